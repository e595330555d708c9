"""External alignment and trimming tools.

The refinement loop only sees the Aligner and Trimmer interfaces; the MAFFT
and trimAl backends write files to a scratch directory at the boundary.
"""

from .aligners import Aligner, MafftAligner
from .trimmers import AUTOMATED, GAP_THRESHOLD, TrimMode, Trimmer, TrimalTrimmer

__all__ = [
    "Aligner",
    "MafftAligner",
    "Trimmer",
    "TrimalTrimmer",
    "TrimMode",
    "AUTOMATED",
    "GAP_THRESHOLD",
]
