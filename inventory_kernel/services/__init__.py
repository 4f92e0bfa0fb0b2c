"""Kernel write services: BatchStore and AdjustmentLedger."""
