"""Shared data types for orthogroup refinement."""

from dataclasses import dataclass
from typing import Dict, Iterable, List, NamedTuple, Optional


# Codon mapping skip reasons
INSUFFICIENT_CODONS = "InsufficientCodons"
FRAME_MISMATCH = "FrameMismatch"

# Refinement outcomes
STATUS_CONVERGED = "converged"
STATUS_MAX_ITERATIONS = "max_iterations"
STATUS_DEPLETED = "depleted"

# Sequence types, also used as file suffixes
PROTEIN = "faa"
NUCLEOTIDE = "fna"


@dataclass
class OrthogroupSet:
    """Raw sequences for one orthogroup.

    Attributes:
        orthogroup_id: Orthogroup identifier (input file name without suffix)
        protein: id -> protein sequence, in file order
        nucleotide: id -> coding sequence, or None when codon output is not requested
    """
    orthogroup_id: str
    protein: Dict[str, str]
    nucleotide: Optional[Dict[str, str]] = None

    def __len__(self) -> int:
        return len(self.protein)

    @property
    def ids(self) -> List[str]:
        return list(self.protein)

    def subset(self, ids: Iterable[str]) -> 'OrthogroupSet':
        """Return a new set restricted to ids, keeping the original record order."""
        keep = set(ids)
        protein = {seq_id: seq for seq_id, seq in self.protein.items() if seq_id in keep}
        nucleotide = None
        if self.nucleotide is not None:
            nucleotide = {seq_id: seq for seq_id, seq in self.nucleotide.items() if seq_id in keep}
        return OrthogroupSet(self.orthogroup_id, protein, nucleotide)


class CodonMapping(NamedTuple):
    """Result of mapping one protein alignment row onto its coding sequence."""
    sequence: Optional[str]  # Codon-aligned row, None when skipped
    skip_reason: Optional[str] = None  # INSUFFICIENT_CODONS or FRAME_MISMATCH

    @property
    def skipped(self) -> bool:
        return self.skip_reason is not None


class CoverageResult(NamedTuple):
    """Partition of one alignment by per-sequence coverage."""
    retained: List[str]
    discarded: List[str]
    coverage: Dict[str, float]


class PairedCoverageResult(NamedTuple):
    """Coverage partition for a protein alignment and its optional codon alignment."""
    retained: List[str]  # Protein passes and nucleotide (if evaluated) passes
    discarded: List[str]
    protein: CoverageResult
    nucleotide: Optional[CoverageResult]
    divergent: List[str]  # Evaluated in both types with different outcomes


class RoundSummary(NamedTuple):
    """What happened to an orthogroup during one refinement round."""
    iteration: int
    input_count: int
    retained: List[str]
    discarded: List[str]
    codon_skips: Dict[str, str]
    divergent: List[str]


class RefinementResult(NamedTuple):
    """Final outcome of refining one orthogroup."""
    orthogroup_id: str
    status: str
    iterations: int
    input_count: int
    final_ids: List[str]
    rounds: List[RoundSummary]

    @property
    def converged(self) -> bool:
        return self.status == STATUS_CONVERGED

    @property
    def discarded_ids(self) -> List[str]:
        return [seq_id for r in self.rounds for seq_id in r.discarded]

    @property
    def codon_skips(self) -> Dict[str, str]:
        """Codon mapping skips from the final round, whose files are the ones kept."""
        return dict(self.rounds[-1].codon_skips) if self.rounds else {}

    @property
    def divergent_ids(self) -> List[str]:
        return list(self.rounds[-1].divergent) if self.rounds else []
