"""Error taxonomy for ogrefine.

Input contract violations and external tool failures are fatal for the whole
run. Per-sequence problems (codon mapping skips) are not exceptions at all;
they are returned as skip reasons and reported in the run manifest.
"""


class RefinementError(Exception):
    """Base class for all ogrefine errors."""


class ConfigurationError(RefinementError, ValueError):
    """A configuration value is outside its accepted domain."""


class MalformedRecordError(RefinementError, ValueError):
    """A FASTA record has an empty identifier or an empty residue string."""


class IdentifierMismatchError(RefinementError, ValueError):
    """Protein and nucleotide inputs do not describe the same identifiers."""


class OrthogroupTooSmallError(RefinementError, ValueError):
    """An orthogroup has too few sequences to enter the refinement loop."""


class ExternalToolError(RefinementError, RuntimeError):
    """An external aligner or trimmer could not produce a usable result."""


class AlignerFailure(ExternalToolError):
    """The aligner exited with an error or produced no records."""


class TrimmerFailure(ExternalToolError):
    """The trimmer exited with an error or produced no output file."""
