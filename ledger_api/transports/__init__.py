"""Transportes de entrada al ledger (HTTP vive en endpoints/)."""
