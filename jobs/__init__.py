"""Procesos batch del ledger."""
