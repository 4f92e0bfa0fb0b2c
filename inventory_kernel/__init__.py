"""
Inventory Kernel

Batch (lot) tracking core for a point-of-sale inventory system:
- Per-product batches with independent unit cost and expiration
- Append-only adjustment ledger with deterministic replay
- Typed errors and structured logging shared by every layer
"""

__version__ = "0.1.0"
