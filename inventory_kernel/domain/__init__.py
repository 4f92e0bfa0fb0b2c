"""Pure domain values for the inventory kernel (no I/O)."""
