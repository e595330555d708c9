#!/usr/bin/env python3
"""Command-line entry point for ogrefine."""

import argparse
import logging
import sys

from ogrefine import __version__
from ogrefine.config import RefinementConfig
from ogrefine.errors import RefinementError
from ogrefine.pipeline import run_pipeline


def parse_arguments():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="""
        Iteratively refine orthogroup alignments for phylogenetic inference.

        Each orthogroup ({id}.faa, optionally {id}.fna) is aligned with MAFFT,
        trimmed with trimAl, and sequences with low post-trim coverage are
        removed. Survivors are re-aligned until no more sequences are removed.
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        'input_dir',
        help="Directory with per-orthogroup {id}.faa (and {id}.fna) files"
    )
    parser.add_argument(
        '--output-dir', '-o',
        default="refined",
        help="Directory for alignments and the run manifest (default: refined)"
    )
    parser.add_argument(
        '--nucleotide',
        action='store_true',
        help="Build codon alignments from {id}.fna coding sequences"
    )
    parser.add_argument(
        '--min-coverage',
        type=float,
        default=0.5,
        help="Minimum fraction of a sequence remaining after trimming, 0.1-1.0 (default: 0.5)"
    )

    trim_group = parser.add_mutually_exclusive_group()
    trim_group.add_argument(
        '--trim-automated',
        action='store_true',
        help="Trim with trimAl's automated heuristic (-automated1)"
    )
    trim_group.add_argument(
        '--trim-gap-threshold',
        type=float,
        default=None,
        metavar="FRACTION",
        help="Trim with trimAl gap threshold (-gt FRACTION, 0.0-1.0). "
             "Without either trim option, orthogroups are aligned once and not filtered."
    )

    parser.add_argument(
        '--max-iterations',
        type=int,
        default=5,
        help="Maximum refinement rounds per orthogroup (default: 5)"
    )
    parser.add_argument(
        '--threads',
        type=int,
        default=1,
        metavar="N",
        help="Threads for each MAFFT run (default: 1)"
    )
    parser.add_argument(
        '--workers',
        type=int,
        default=None,
        metavar="N",
        help="Orthogroups processed in parallel (default: CPU count / threads)"
    )
    parser.add_argument('--mafft-exe', default="mafft", help="MAFFT executable (default: mafft)")
    parser.add_argument('--mafft-opts', default="--auto", help="MAFFT options (default: --auto)")
    parser.add_argument('--trimal-exe', default="trimal", help="trimAl executable (default: trimal)")
    parser.add_argument(
        '--scratch-dir',
        default=None,
        help="Parent directory for per-round scratch files (default: system temp)"
    )
    parser.add_argument(
        '--log-level',
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help="Logging level (default: INFO)"
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f"ogrefine {__version__}",
        help="Show program's version number and exit"
    )

    return parser.parse_args()


def setup_logging(log_level: str):
    """Setup logging configuration."""
    logging.basicConfig(
        level=getattr(logging, log_level),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )


def main():
    args = parse_arguments()
    setup_logging(args.log_level)

    try:
        config = RefinementConfig.from_args(args)
        manifest = run_pipeline(config)
    except RefinementError as e:
        logging.error(f"{type(e).__name__}: {e}")
        return 1

    non_converged = len(manifest["non_converged"])
    if non_converged:
        logging.warning(f"{non_converged} orthogroup(s) did not converge; see the run manifest")

    return 0


if __name__ == '__main__':
    sys.exit(main())
