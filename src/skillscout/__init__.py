"""skillscout - mine session logs for reusable skill candidates.

This package scans historical assistant session logs for recurring tool
workflows and clusters semantically similar prompts, producing ranked,
evidence-backed candidates for reusable skill definitions.

Exports:
    __version__: Package version string.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.4.0"
