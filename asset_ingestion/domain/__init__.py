"""Pure domain types for the asset import pipeline (no I/O)."""
