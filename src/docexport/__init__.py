"""
docexport - export orchestration engine

File: src/docexport/__init__.py

Purpose
- Package root. Resolves export requests into targets, materializes assets,
  drives per-target conversion pipelines and settles them as a batch.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.3.0"

__all__ = ["__version__"]
