"""Recovery jobs for the ledger.

Modules:
- runner: recompute_streams (resume / rebuild, per stream)
- cli: CLI entry point (main)
"""

from .runner import RecomputeReport, recompute_streams
from .cli import main

__all__ = ["RecomputeReport", "recompute_streams", "main"]
