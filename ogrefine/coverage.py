"""Per-sequence coverage filtering of trimmed alignments."""

import logging
from typing import Dict, Optional

from ogrefine.errors import ConfigurationError
from ogrefine.sequences import ungapped_length
from ogrefine.types import CoverageResult, PairedCoverageResult


MIN_COVERAGE_FLOOR = 0.1
MIN_COVERAGE_CEILING = 1.0


def validate_min_coverage(min_coverage: float) -> float:
    """Reject coverage thresholds outside [0.1, 1.0]; values are never clamped."""
    if not MIN_COVERAGE_FLOOR <= min_coverage <= MIN_COVERAGE_CEILING:
        raise ConfigurationError(
            f"Minimum coverage must be between {MIN_COVERAGE_FLOOR} and "
            f"{MIN_COVERAGE_CEILING}, got {min_coverage}")
    return min_coverage


def calculate_coverage(trimmed_row: str, full_length: int) -> float:
    """Fraction of a sequence's residues still present in its trimmed row."""
    if full_length <= 0:
        return 0.0
    return ungapped_length(trimmed_row) / full_length


def filter_by_coverage(trimmed: Dict[str, str], full_lengths: Dict[str, int],
                       min_coverage: float) -> CoverageResult:
    """
    Partition sequences by their coverage after trimming.

    Args:
        trimmed: id -> trimmed alignment row
        full_lengths: id -> ungapped length before trimming; defines which
            sequences are evaluated and in what order
        min_coverage: Minimum coverage to retain a sequence

    Returns:
        CoverageResult with retained and discarded ids and per-id coverage.
        Sequences the trimmer dropped entirely have coverage 0.0.
    """
    validate_min_coverage(min_coverage)

    retained = []
    discarded = []
    coverage = {}
    for seq_id, full_length in full_lengths.items():
        value = calculate_coverage(trimmed.get(seq_id, ""), full_length)
        coverage[seq_id] = value
        if value >= min_coverage:
            retained.append(seq_id)
        else:
            discarded.append(seq_id)
            logging.debug(f"Discarding {seq_id}: coverage {value:.3f} < {min_coverage}")

    return CoverageResult(retained, discarded, coverage)


def filter_paired(protein_trimmed: Dict[str, str], protein_lengths: Dict[str, int],
                  min_coverage: float,
                  nucleotide_trimmed: Optional[Dict[str, str]] = None,
                  nucleotide_lengths: Optional[Dict[str, int]] = None) -> PairedCoverageResult:
    """
    Filter a protein alignment and, when present, its codon alignment.

    Each type is judged on its own lengths. A sequence stays in the working
    set only if its protein row passes and its nucleotide row (when one
    exists) passes too. The per-type results are returned unreconciled, and
    ids whose two outcomes disagree are listed in `divergent`.
    """
    protein = filter_by_coverage(protein_trimmed, protein_lengths, min_coverage)

    nucleotide = None
    if nucleotide_lengths is not None:
        nucleotide = filter_by_coverage(nucleotide_trimmed or {}, nucleotide_lengths, min_coverage)

    protein_pass = set(protein.retained)
    nucleotide_pass = set(nucleotide.retained) if nucleotide is not None else set()
    nucleotide_evaluated = set(nucleotide_lengths) if nucleotide_lengths is not None else set()

    retained = []
    discarded = []
    divergent = []
    for seq_id in protein_lengths:
        passes = seq_id in protein_pass
        if seq_id in nucleotide_evaluated:
            nucleotide_passes = seq_id in nucleotide_pass
            if passes != nucleotide_passes:
                divergent.append(seq_id)
            passes = passes and nucleotide_passes
        (retained if passes else discarded).append(seq_id)

    if divergent:
        logging.warning(f"Protein and nucleotide coverage disagree for {len(divergent)} "
                        f"sequence(s): {', '.join(divergent)}")

    return PairedCoverageResult(retained, discarded, protein, nucleotide, divergent)
