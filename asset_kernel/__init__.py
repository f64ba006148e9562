"""
Asset Kernel - shared infrastructure for the asset import pipeline.

- Structured JSON logging with context propagation
- Typed exception hierarchy with machine-readable codes
- SQLAlchemy declarative base and engine/session management
- Injectable clocks for deterministic timestamps
"""

__version__ = "0.1.0"
