"""
Codon alignment reconstruction.

Expands a gapped protein alignment row into a gapped nucleotide row using the
sequence's raw coding sequence, so that every protein column corresponds to
exactly one codon (or a gap/unknown marker) in the output.
"""

import logging
from typing import Dict, List, Tuple

from ogrefine.sequences import GAP_CHARS
from ogrefine.types import CodonMapping, FRAME_MISMATCH, INSUFFICIENT_CODONS


CODON_SIZE = 3
STOP_CODONS = frozenset(["TAA", "TAG", "TGA"])
WILDCARD_CHARS = frozenset("Xx?")
CODON_GAP = "-" * CODON_SIZE
CODON_UNKNOWN = "?" * CODON_SIZE


def split_codons(cds: str) -> List[str]:
    """Split a coding sequence into consecutive, non-overlapping codons."""
    return [cds[i:i + CODON_SIZE] for i in range(0, len(cds) - CODON_SIZE + 1, CODON_SIZE)]


def map_to_codon_alignment(protein_aligned: str, raw_cds: str) -> CodonMapping:
    """
    Map an aligned protein row onto its coding sequence.

    The CDS must supply exactly one whole codon per protein residue. A single
    trailing stop codon is tolerated and dropped. Wildcard residues ('X', '?')
    consume their codon but emit '???' in its place, so the unknown residue
    stays unknown in the codon alignment too.

    Args:
        protein_aligned: Protein alignment row (with gaps)
        raw_cds: Unaligned coding sequence for the same identifier

    Returns:
        CodonMapping with the codon-aligned row, or with a skip reason
        (INSUFFICIENT_CODONS or FRAME_MISMATCH) and no sequence
    """
    residue_count = sum(1 for c in protein_aligned if c not in GAP_CHARS)

    if len(raw_cds) // CODON_SIZE < residue_count:
        return CodonMapping(None, INSUFFICIENT_CODONS)

    cds = raw_cds
    if len(cds) % CODON_SIZE != 0 or len(cds) // CODON_SIZE != residue_count:
        if cds[-CODON_SIZE:].upper() not in STOP_CODONS:
            return CodonMapping(None, FRAME_MISMATCH)
        cds = cds[:-CODON_SIZE]

    # A stray base left after the stop is not a whole codon and is ignored
    codons = split_codons(cds)
    if len(codons) != residue_count:
        return CodonMapping(None, FRAME_MISMATCH)

    emitted = []
    codon_index = 0
    for column in protein_aligned:
        if column in GAP_CHARS:
            emitted.append(CODON_GAP)
        elif column in WILDCARD_CHARS:
            emitted.append(CODON_UNKNOWN)
            codon_index += 1
        else:
            emitted.append(codons[codon_index])
            codon_index += 1

    return CodonMapping(''.join(emitted))


def build_codon_alignment(protein_alignment: Dict[str, str],
                          nucleotide_records: Dict[str, str]) -> Tuple[Dict[str, str], Dict[str, str]]:
    """
    Build a codon alignment for every row of a protein alignment.

    Args:
        protein_alignment: id -> aligned protein row
        nucleotide_records: id -> raw coding sequence (identifier parity
            with the protein set is checked before this point)

    Returns:
        Tuple of (codon alignment in protein row order, id -> skip reason)
    """
    codon_alignment = {}
    skipped = {}

    for seq_id, protein_row in protein_alignment.items():
        mapping = map_to_codon_alignment(protein_row, nucleotide_records[seq_id])
        if mapping.skipped:
            skipped[seq_id] = mapping.skip_reason
            logging.warning(f"Skipping {seq_id} in codon alignment: {mapping.skip_reason}")
            continue
        codon_alignment[seq_id] = mapping.sequence

    if skipped:
        logging.debug(f"Codon alignment: {len(codon_alignment)} mapped, {len(skipped)} skipped")

    return codon_alignment, skipped
