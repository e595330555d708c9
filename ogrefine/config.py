"""Configuration for alignment refinement."""

import os
from dataclasses import dataclass
from typing import Optional

from ogrefine.coverage import validate_min_coverage
from ogrefine.errors import ConfigurationError
from ogrefine.external import TrimMode


# Orthogroups with fewer sequences never enter the refinement loop
MIN_ORTHOGROUP_MEMBERS = 3


@dataclass
class RefinementConfig:
    """Configuration for a refinement run.

    Attributes:
        input_dir: Directory with {orthogroup}.faa and optional {orthogroup}.fna files
        output_dir: Directory for alignments and the run manifest
        min_coverage: Minimum post-trim coverage to keep a sequence, in [0.1, 1.0]
        trim_mode: Trimming mode, or None to align once without filtering
        max_iterations: Maximum refinement rounds per orthogroup (>= 1)
        nucleotide: Whether to build codon alignments from {orthogroup}.fna
        threads: Threads given to each external tool invocation
        workers: Parallel orthogroup workers (default: CPUs / threads)
        mafft_exe: MAFFT executable
        mafft_opts: Extra MAFFT options
        trimal_exe: trimAl executable
        scratch_dir: Parent directory for per-round scratch space (default: system temp)
    """
    input_dir: str = "."
    output_dir: str = "refined"
    min_coverage: float = 0.5
    trim_mode: Optional[TrimMode] = None
    max_iterations: int = 5
    nucleotide: bool = False
    threads: int = 1
    workers: Optional[int] = None
    mafft_exe: str = "mafft"
    mafft_opts: str = "--auto"
    trimal_exe: str = "trimal"
    scratch_dir: Optional[str] = None

    def validate(self) -> 'RefinementConfig':
        """Check value domains.

        Raises:
            ConfigurationError: If any value is out of range
        """
        validate_min_coverage(self.min_coverage)
        if self.max_iterations < 1:
            raise ConfigurationError(f"Maximum iterations must be at least 1, got {self.max_iterations}")
        if self.threads < 1:
            raise ConfigurationError(f"Threads must be at least 1, got {self.threads}")
        if self.workers is not None and self.workers < 1:
            raise ConfigurationError(f"Workers must be at least 1, got {self.workers}")
        return self

    @property
    def worker_count(self) -> int:
        """Worker pool size, sized so workers x tool threads fits the machine."""
        if self.workers is not None:
            return self.workers
        return max(1, (os.cpu_count() or 1) // self.threads)

    @classmethod
    def from_args(cls, args) -> 'RefinementConfig':
        """Create config from command-line arguments.

        --trim-automated and --trim-gap-threshold are mutually exclusive at the
        parser level; neither means no trimming.
        """
        trim_mode = None
        if getattr(args, 'trim_automated', False):
            trim_mode = TrimMode.automated()
        elif getattr(args, 'trim_gap_threshold', None) is not None:
            trim_mode = TrimMode.gap_fraction(args.trim_gap_threshold)

        return cls(
            input_dir=args.input_dir,
            output_dir=args.output_dir,
            min_coverage=args.min_coverage,
            trim_mode=trim_mode,
            max_iterations=args.max_iterations,
            nucleotide=args.nucleotide,
            threads=args.threads,
            workers=args.workers,
            mafft_exe=args.mafft_exe,
            mafft_opts=args.mafft_opts,
            trimal_exe=args.trimal_exe,
            scratch_dir=args.scratch_dir,
        ).validate()
