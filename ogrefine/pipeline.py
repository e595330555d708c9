"""
Run-level orchestration: discover orthogroups, refine them in parallel and
write the run manifest.

Orthogroups are independent, so they are spread over a process pool. Fatal
errors (malformed input, identifier mismatches, aligner/trimmer failures)
abort the whole run; everything else is recorded in the manifest.
"""

import json
import logging
import os
from concurrent.futures import ProcessPoolExecutor, as_completed
from datetime import datetime
from typing import Dict, List, NamedTuple, Optional, Tuple

import numpy as np
from tqdm import tqdm

from ogrefine import __version__
from ogrefine.config import MIN_ORTHOGROUP_MEMBERS, RefinementConfig
from ogrefine.errors import AlignerFailure, TrimmerFailure
from ogrefine.external import Aligner, MafftAligner, Trimmer, TrimalTrimmer
from ogrefine.refine import AlignmentRefiner
from ogrefine.sequences import assert_identifier_parity, find_orthogroup_files, load_orthogroup
from ogrefine.types import (
    NUCLEOTIDE,
    PROTEIN,
    STATUS_CONVERGED,
    STATUS_DEPLETED,
    STATUS_MAX_ITERATIONS,
    RefinementResult,
)


MANIFEST_NAME = "refinement_manifest.json"


class OrthogroupOutcome(NamedTuple):
    """Outcome for one discovered orthogroup; result is None if it was excluded."""
    orthogroup_id: str
    sequence_count: int
    result: Optional[RefinementResult]


def discover_orthogroups(config: RefinementConfig) -> Tuple[Dict[str, str], Optional[Dict[str, str]]]:
    """
    Find protein (and, if requested, nucleotide) input files.

    Returns:
        Tuple of (orthogroup id -> .faa path, orthogroup id -> .fna path or None)

    Raises:
        IdentifierMismatchError: If nucleotide output is requested and the
            .faa and .fna orthogroup sets differ
    """
    protein_files = find_orthogroup_files(config.input_dir, PROTEIN)
    nucleotide_files = None
    if config.nucleotide:
        nucleotide_files = find_orthogroup_files(config.input_dir, NUCLEOTIDE)
        assert_identifier_parity(protein_files, nucleotide_files,
                                 context=f"Orthogroup files in {config.input_dir}")
    return protein_files, nucleotide_files


def build_tools(config: RefinementConfig) -> Tuple[Aligner, Optional[Trimmer]]:
    """Create the MAFFT aligner and, when trimming is configured, the trimAl trimmer."""
    aligner = MafftAligner(config.mafft_exe, config.mafft_opts, config.threads)
    trimmer = TrimalTrimmer(config.trimal_exe) if config.trim_mode is not None else None
    return aligner, trimmer


def check_tools(aligner: Aligner, trimmer: Optional[Trimmer]) -> None:
    """Fail fast if a configured external tool cannot be found."""
    if not aligner.is_available:
        raise AlignerFailure(f"Aligner '{aligner.name}' is not available; check the executable path")
    if trimmer is not None and not trimmer.is_available:
        raise TrimmerFailure(f"Trimmer '{trimmer.name}' is not available; check the executable path")


def refine_orthogroup_file(refiner: AlignmentRefiner, orthogroup_id: str, protein_path: str,
                           nucleotide_path: Optional[str] = None) -> OrthogroupOutcome:
    """Load and refine one orthogroup. Runs inside a worker process."""
    orthogroup = load_orthogroup(orthogroup_id, protein_path, nucleotide_path)
    if len(orthogroup) < MIN_ORTHOGROUP_MEMBERS:
        logging.debug(f"Excluding {orthogroup_id}: {len(orthogroup)} sequence(s)")
        return OrthogroupOutcome(orthogroup_id, len(orthogroup), None)
    return OrthogroupOutcome(orthogroup_id, len(orthogroup), refiner.refine(orthogroup))


def _run_serial(refiner, tasks) -> List[OrthogroupOutcome]:
    outcomes = []
    for og_id, protein_path, nucleotide_path in tqdm(tasks, desc="Refining orthogroups", unit="OG"):
        outcomes.append(refine_orthogroup_file(refiner, og_id, protein_path, nucleotide_path))
    return outcomes


def _run_parallel(refiner, tasks, max_workers: int) -> List[OrthogroupOutcome]:
    outcomes = []
    with ProcessPoolExecutor(max_workers=max_workers) as executor:
        futures = {
            executor.submit(refine_orthogroup_file, refiner, og_id, protein_path, nucleotide_path): og_id
            for og_id, protein_path, nucleotide_path in tasks
        }
        try:
            for future in tqdm(as_completed(futures), total=len(futures),
                               desc="Refining orthogroups", unit="OG"):
                outcomes.append(future.result())
        except Exception as e:
            logging.error(f"Aborting run: {type(e).__name__}: {e}")
            # Let in-flight orthogroups finish their round; drop the rest
            for pending in futures:
                pending.cancel()
            raise
    return outcomes


def build_manifest(config: RefinementConfig, outcomes: List[OrthogroupOutcome]) -> Dict:
    """Assemble the run manifest from per-orthogroup outcomes."""
    outcomes = sorted(outcomes, key=lambda o: o.orthogroup_id)
    refined = [o.result for o in outcomes if o.result is not None]

    orthogroups = {}
    skipped_sequences = []
    divergent_sequences = []
    non_converged = []
    for result in refined:
        orthogroups[result.orthogroup_id] = {
            "status": result.status,
            "iterations": result.iterations,
            "input_count": result.input_count,
            "final_count": len(result.final_ids),
            "discarded": result.discarded_ids,
            "rounds": [
                {
                    "iteration": r.iteration,
                    "input_count": r.input_count,
                    "retained_count": len(r.retained),
                    "discarded": r.discarded,
                }
                for r in result.rounds
            ],
        }
        for seq_id, reason in result.codon_skips.items():
            skipped_sequences.append({"orthogroup": result.orthogroup_id, "id": seq_id, "reason": reason})
        for seq_id in result.divergent_ids:
            divergent_sequences.append({"orthogroup": result.orthogroup_id, "id": seq_id})
        if not result.converged:
            non_converged.append({
                "orthogroup": result.orthogroup_id,
                "status": result.status,
                "iterations": result.iterations,
            })

    iterations = np.array([r.iterations for r in refined], dtype=float)
    retention = np.array([len(r.final_ids) / r.input_count for r in refined], dtype=float)
    statuses = [r.status for r in refined]

    summary = {
        "orthogroups_found": len(outcomes),
        "orthogroups_refined": len(refined),
        "orthogroups_excluded": len(outcomes) - len(refined),
        "converged": statuses.count(STATUS_CONVERGED),
        "max_iterations_reached": statuses.count(STATUS_MAX_ITERATIONS),
        "depleted": statuses.count(STATUS_DEPLETED),
        "sequences_in": int(sum(r.input_count for r in refined)),
        "sequences_retained": int(sum(len(r.final_ids) for r in refined)),
        "codon_skips": len(skipped_sequences),
        "divergent_sequences": len(divergent_sequences),
        "mean_iterations": float(np.mean(iterations)) if refined else None,
        "median_retention": float(np.median(retention)) if refined else None,
    }

    return {
        "version": __version__,
        "timestamp": datetime.now().isoformat(),
        "parameters": {
            "input_dir": os.path.abspath(config.input_dir),
            "output_dir": os.path.abspath(config.output_dir),
            "min_coverage": config.min_coverage,
            "trim_mode": str(config.trim_mode) if config.trim_mode is not None else None,
            "max_iterations": config.max_iterations,
            "nucleotide": config.nucleotide,
            "min_orthogroup_members": MIN_ORTHOGROUP_MEMBERS,
            "threads": config.threads,
            "workers": config.worker_count,
        },
        "summary": summary,
        "orthogroups": orthogroups,
        "excluded_orthogroups": {
            o.orthogroup_id: o.sequence_count for o in outcomes if o.result is None
        },
        "skipped_sequences": skipped_sequences,
        "divergent_sequences": divergent_sequences,
        "non_converged": non_converged,
    }


def write_manifest(manifest: Dict, output_dir: str) -> str:
    manifest_file = os.path.join(output_dir, MANIFEST_NAME)
    with open(manifest_file, 'w') as f:
        json.dump(manifest, f, indent=2)
    logging.info(f"Wrote run manifest to {manifest_file}")
    return manifest_file


def log_summary(manifest: Dict) -> None:
    summary = manifest["summary"]
    logging.info("=" * 60)
    logging.info("Refinement summary")
    logging.info(f"  Orthogroups found: {summary['orthogroups_found']}")
    logging.info(f"  Excluded (< {MIN_ORTHOGROUP_MEMBERS} sequences): {summary['orthogroups_excluded']}")
    logging.info(f"  Converged: {summary['converged']}")
    logging.info(f"  Iteration cap reached: {summary['max_iterations_reached']}")
    logging.info(f"  Depleted: {summary['depleted']}")
    logging.info(f"  Sequences retained: {summary['sequences_retained']}/{summary['sequences_in']}")
    if summary['mean_iterations'] is not None:
        logging.info(f"  Mean iterations: {summary['mean_iterations']:.2f}, "
                     f"median retention: {summary['median_retention']:.1%}")
    if summary['codon_skips']:
        logging.warning(f"  {summary['codon_skips']} sequence(s) skipped from codon alignments")
    if summary['divergent_sequences']:
        logging.warning(f"  {summary['divergent_sequences']} sequence(s) with divergent "
                        f"protein/nucleotide coverage outcomes")
    logging.info("=" * 60)


def run_pipeline(config: RefinementConfig, aligner: Optional[Aligner] = None,
                 trimmer: Optional[Trimmer] = None) -> Dict:
    """
    Refine every orthogroup in config.input_dir.

    Args:
        config: Run configuration
        aligner: Aligner capability (default: MAFFT from config)
        trimmer: Trimmer capability (default: trimAl when a trim mode is set)

    Returns:
        The run manifest, also written to {output_dir}/refinement_manifest.json

    Raises:
        RefinementError subclasses for fatal conditions
    """
    config.validate()
    default_aligner, default_trimmer = build_tools(config)
    aligner = aligner if aligner is not None else default_aligner
    trimmer = trimmer if trimmer is not None else default_trimmer
    check_tools(aligner, trimmer)

    protein_files, nucleotide_files = discover_orthogroups(config)
    os.makedirs(config.output_dir, exist_ok=True)
    if config.scratch_dir:
        os.makedirs(config.scratch_dir, exist_ok=True)

    if not protein_files:
        logging.warning(f"No *.{PROTEIN} files found in {config.input_dir}. Nothing to refine.")

    logging.info(f"Found {len(protein_files)} orthogroups in {config.input_dir}")
    logging.info(f"Trimming: {config.trim_mode or 'disabled'}, min coverage: {config.min_coverage}, "
                 f"max iterations: {config.max_iterations}, codon alignments: {config.nucleotide}")

    refiner = AlignmentRefiner(config, aligner, trimmer)
    tasks = [
        (og_id, protein_path, nucleotide_files[og_id] if nucleotide_files is not None else None)
        for og_id, protein_path in protein_files.items()
    ]

    workers = min(config.worker_count, max(1, len(tasks)))
    if workers == 1:
        outcomes = _run_serial(refiner, tasks)
    else:
        logging.info(f"Running {workers} parallel workers with {config.threads} tool thread(s) each")
        outcomes = _run_parallel(refiner, tasks, workers)

    manifest = build_manifest(config, outcomes)
    write_manifest(manifest, config.output_dir)
    log_summary(manifest)
    return manifest
