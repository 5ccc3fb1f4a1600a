"""Infraestructura: persistencia del ledger."""
