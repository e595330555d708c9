#!/usr/bin/env python3
"""
Iterative alignment refinement for a single orthogroup.

Each round aligns the current survivors, optionally builds a codon alignment,
trims, and drops sequences whose trimmed rows cover too little of the original
sequence. Rounds repeat on the surviving raw sequences until a round removes
nothing or the iteration cap is reached.
"""

import logging
import os
import shutil
import tempfile
from typing import Dict, Optional

from ogrefine.codon import build_codon_alignment
from ogrefine.config import MIN_ORTHOGROUP_MEMBERS, RefinementConfig
from ogrefine.coverage import filter_paired
from ogrefine.errors import (
    AlignerFailure,
    ConfigurationError,
    MalformedRecordError,
    OrthogroupTooSmallError,
)
from ogrefine.external import Aligner, Trimmer
from ogrefine.sequences import (
    alignment_width,
    orthogroup_paths,
    select_records,
    ungapped_length,
    write_sequences,
)
from ogrefine.types import (
    NUCLEOTIDE,
    PROTEIN,
    STATUS_CONVERGED,
    STATUS_DEPLETED,
    STATUS_MAX_ITERATIONS,
    OrthogroupSet,
    RefinementResult,
    RoundSummary,
)


class AlignmentRefiner:
    """Runs the align -> (codon map) -> trim -> filter loop for orthogroups.

    The refiner holds only configuration and stateless tool objects, so one
    instance can be shared by every orthogroup in a worker process.
    """

    def __init__(self, config: RefinementConfig, aligner: Aligner,
                 trimmer: Optional[Trimmer] = None):
        if config.trim_mode is not None and trimmer is None:
            raise ConfigurationError("A trim mode is configured but no trimmer was given")
        self.config = config
        self.aligner = aligner
        self.trimmer = trimmer

    def refine(self, orthogroup: OrthogroupSet) -> RefinementResult:
        """Refine one orthogroup until its survivor set stops changing.

        Args:
            orthogroup: Raw sequences; must have at least MIN_ORTHOGROUP_MEMBERS

        Returns:
            RefinementResult describing every round. The output directory holds
            the files from the last round.
        """
        og_id = orthogroup.orthogroup_id
        if len(orthogroup) < MIN_ORTHOGROUP_MEMBERS:
            raise OrthogroupTooSmallError(f"Orthogroup {og_id} has {len(orthogroup)} sequences; "
                                          f"at least {MIN_ORTHOGROUP_MEMBERS} are required")

        os.makedirs(self.config.output_dir, exist_ok=True)

        surviving = orthogroup.ids
        rounds = []
        status = STATUS_MAX_ITERATIONS

        for iteration in range(1, self.config.max_iterations + 1):
            summary = self._run_round(orthogroup.subset(surviving), iteration)
            rounds.append(summary)

            logging.debug(f"{og_id} round {iteration}: {summary.input_count} in, "
                          f"{len(summary.retained)} retained, {len(summary.discarded)} discarded")

            if set(summary.retained) == set(surviving):
                status = STATUS_CONVERGED
                break

            surviving = summary.retained
            if len(surviving) < MIN_ORTHOGROUP_MEMBERS:
                status = STATUS_DEPLETED
                logging.warning(f"{og_id}: only {len(surviving)} sequence(s) left after round "
                                f"{iteration}; stopping refinement")
                break
        else:
            logging.warning(f"{og_id}: not converged after {self.config.max_iterations} "
                            f"iteration(s); keeping the last round's alignment")

        return RefinementResult(
            orthogroup_id=og_id,
            status=status,
            iterations=len(rounds),
            input_count=len(orthogroup),
            final_ids=list(rounds[-1].retained),
            rounds=rounds,
        )

    def _align(self, records: Dict[str, str], work_dir: str) -> Dict[str, str]:
        aligned = self.aligner.align(records, work_dir)
        if not aligned:
            raise AlignerFailure(f"{self.aligner.name} returned no aligned records")
        if set(aligned) != set(records):
            raise AlignerFailure(f"{self.aligner.name} returned {len(aligned)} records whose "
                                 f"identifiers do not match the {len(records)} input sequences")
        try:
            alignment_width(aligned)
        except MalformedRecordError as e:
            raise AlignerFailure(f"{self.aligner.name} returned a ragged alignment: {e}") from e
        return aligned

    def _run_round(self, working: OrthogroupSet, iteration: int) -> RoundSummary:
        """Run one round in a private scratch directory and promote its outputs."""
        og_id = working.orthogroup_id
        mode = self.config.trim_mode

        with tempfile.TemporaryDirectory(prefix=f"{og_id}-round{iteration}-",
                                         dir=self.config.scratch_dir) as scratch:
            staged = os.path.join(scratch, "staged")
            os.makedirs(staged)
            protein_paths = orthogroup_paths(staged, og_id, PROTEIN)
            nucleotide_paths = orthogroup_paths(staged, og_id, NUCLEOTIDE)

            # ALIGN
            aligned = self._align(working.protein, scratch)
            write_sequences(aligned, protein_paths['aln'])

            # MAP_CODONS
            codon_alignment = None
            codon_skips = {}
            if working.nucleotide is not None:
                codon_alignment, codon_skips = build_codon_alignment(aligned, working.nucleotide)
                write_sequences(codon_alignment, nucleotide_paths['aln'])

            if mode is None:
                # Nothing to filter on; a single pass is final
                self._promote(staged)
                return RoundSummary(iteration, len(working), list(aligned), [], codon_skips, [])

            # TRIM
            trimmed = self.trimmer.trim(aligned, mode, scratch)
            write_sequences(trimmed, protein_paths['trim'])

            codon_trimmed = None
            codon_lengths = None
            if codon_alignment is not None:
                codon_trimmed = self.trimmer.trim(codon_alignment, mode, scratch) if codon_alignment else {}
                codon_lengths = {seq_id: ungapped_length(seq) for seq_id, seq in codon_alignment.items()}
                write_sequences(codon_trimmed, nucleotide_paths['trim'])

            # FILTER
            result = filter_paired(
                trimmed,
                {seq_id: ungapped_length(seq) for seq_id, seq in aligned.items()},
                self.config.min_coverage,
                codon_trimmed,
                codon_lengths,
            )
            write_sequences(select_records(trimmed, result.protein.retained), protein_paths['filter'])
            if result.nucleotide is not None:
                write_sequences(select_records(codon_trimmed, result.nucleotide.retained),
                                nucleotide_paths['filter'])

            self._promote(staged)

        return RoundSummary(iteration, len(working), result.retained, result.discarded,
                            codon_skips, result.divergent)

    def _promote(self, staged_dir: str) -> None:
        """Move a finished round's files into the output directory."""
        for name in sorted(os.listdir(staged_dir)):
            shutil.move(os.path.join(staged_dir, name), os.path.join(self.config.output_dir, name))
