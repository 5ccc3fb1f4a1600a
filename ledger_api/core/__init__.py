"""Core del ledger.

Estructura:
- domain/       → StreamKey, LedgerEntry, timestamps
- aggregation/  → Calculator (regla acumulado/high/low)
- backfill/     → Coordinador de cascada, guard, locks por stream
- validation/   → Validación previa a persistir
- resilience/   → Retry con backoff
"""
