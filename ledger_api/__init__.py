"""Ledger de series temporales con recálculo en cascada (backfill)."""
