"""
ogrefine: iterative alignment refinement for orthogroup sequence sets.

Aligns each orthogroup, optionally reconstructs a codon alignment from the
coding sequences, trims, and removes poorly covered sequences until the
survivor set stops changing.
"""

__version__ = "0.1.0"

from .cli import main as ogrefine_main

__all__ = ["ogrefine_main", "__version__"]
