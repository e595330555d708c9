"""
FASTA record storage for orthogroup sequence sets.

Records are held as ordered id -> sequence string dictionaries. Parsing and
writing go through Biopython so wrapping and header handling match the rest of
the toolchain (MAFFT, trimAl and tree builders all read this output).
"""

import glob
import logging
import os
from typing import Dict, Iterable, Optional

from Bio import SeqIO
from Bio.Seq import Seq
from Bio.SeqIO.FastaIO import FastaWriter
from Bio.SeqRecord import SeqRecord

from ogrefine.errors import IdentifierMismatchError, MalformedRecordError
from ogrefine.types import OrthogroupSet


GAP_CHARS = frozenset("-.")
LINE_WIDTH = 60


def ungapped(seq: str) -> str:
    """Remove alignment gap characters from a sequence."""
    return ''.join(c for c in seq if c not in GAP_CHARS)


def ungapped_length(seq: str) -> int:
    return sum(1 for c in seq if c not in GAP_CHARS)


def load_sequences(path: str, seq_type: str = "protein") -> Dict[str, str]:
    """
    Load FASTA records into an ordered id -> sequence dictionary.

    Args:
        path: FASTA file to read
        seq_type: Label used in error messages (e.g. 'protein', 'nucleotide')

    Returns:
        Dict mapping record id to its residue string, in file order

    Raises:
        MalformedRecordError: On an empty identifier, an empty residue string
            or a duplicate identifier
    """
    records = {}
    for index, record in enumerate(SeqIO.parse(path, "fasta"), 1):
        if not record.id:
            raise MalformedRecordError(
                f"Record {index} in {seq_type} file {path} has an empty identifier")

        # SeqIO joins sequence lines; strip any whitespace left inside them
        seq = ''.join(str(record.seq).split())
        if not seq:
            raise MalformedRecordError(
                f"Record '{record.id}' in {seq_type} file {path} has no residues")

        if record.id in records:
            raise MalformedRecordError(
                f"Duplicate identifier '{record.id}' in {seq_type} file {path}")

        records[record.id] = seq

    logging.debug(f"Loaded {len(records)} {seq_type} records from {path}")
    return records


def write_sequences(records: Dict[str, str], path: str) -> None:
    """Write records as FASTA, wrapped at 60 columns, in insertion order."""
    seq_records = (
        SeqRecord(Seq(seq), id=seq_id, description="")
        for seq_id, seq in records.items()
    )
    with open(path, 'w') as f:
        count = FastaWriter(f, wrap=LINE_WIDTH).write_file(seq_records)
    logging.debug(f"Wrote {count} records to {path}")


def alignment_width(alignment: Dict[str, str]) -> int:
    """Return the shared row length of an alignment.

    Raises:
        MalformedRecordError: If rows differ in length
    """
    widths = {len(seq) for seq in alignment.values()}
    if len(widths) > 1:
        raise MalformedRecordError(
            f"Alignment rows have differing lengths: {sorted(widths)}")
    return widths.pop() if widths else 0


def _sample_ids(ids: Iterable[str], limit: int = 5) -> str:
    ids = sorted(ids)
    sample = ', '.join(ids[:limit])
    if len(ids) > limit:
        sample += f", ... ({len(ids) - limit} more)"
    return sample


def assert_identifier_parity(protein_ids: Iterable[str], nucleotide_ids: Iterable[str],
                             context: str = "") -> None:
    """
    Require that protein and nucleotide inputs cover exactly the same identifiers.

    Raises:
        IdentifierMismatchError: If the two identifier sets differ
    """
    protein_ids = set(protein_ids)
    nucleotide_ids = set(nucleotide_ids)
    if protein_ids == nucleotide_ids:
        return

    only_protein = protein_ids - nucleotide_ids
    only_nucleotide = nucleotide_ids - protein_ids
    parts = [f"{len(protein_ids)} protein vs {len(nucleotide_ids)} nucleotide identifiers"]
    if only_protein:
        parts.append(f"missing nucleotide: {_sample_ids(only_protein)}")
    if only_nucleotide:
        parts.append(f"missing protein: {_sample_ids(only_nucleotide)}")
    prefix = f"{context}: " if context else ""
    raise IdentifierMismatchError(prefix + "; ".join(parts))


def load_orthogroup(orthogroup_id: str, protein_path: str,
                    nucleotide_path: Optional[str] = None) -> OrthogroupSet:
    """Load an orthogroup's raw protein and (optional) coding sequences."""
    protein = load_sequences(protein_path, "protein")
    nucleotide = None
    if nucleotide_path is not None:
        nucleotide = load_sequences(nucleotide_path, "nucleotide")
        assert_identifier_parity(protein, nucleotide, context=f"Orthogroup {orthogroup_id}")
    return OrthogroupSet(orthogroup_id, protein, nucleotide)


def find_orthogroup_files(input_dir: str, suffix: str) -> Dict[str, str]:
    """
    Find per-orthogroup input files in a directory.

    Args:
        input_dir: Directory holding {orthogroup}.{suffix} files
        suffix: File suffix without the dot ('faa' or 'fna')

    Returns:
        Dict mapping orthogroup id to file path
    """
    pattern = os.path.join(input_dir, f'*.{suffix}')
    files = {}
    for file_path in sorted(glob.glob(pattern)):
        basename = os.path.basename(file_path)
        orthogroup_id = basename[:-(len(suffix) + 1)]
        if not orthogroup_id:
            logging.warning(f"Ignoring file without orthogroup name: {file_path}")
            continue
        files[orthogroup_id] = file_path
    return files


def orthogroup_paths(output_dir: str, orthogroup_id: str, seq_type: str) -> Dict[str, str]:
    """Output paths for one orthogroup and sequence type ('faa' or 'fna')."""
    base = os.path.join(output_dir, f"{orthogroup_id}.{seq_type}")
    return {
        'aln': f"{base}.aln",
        'trim': f"{base}.aln.trim",
        'filter': f"{base}.aln.trim.filter",
    }


def select_records(records: Dict[str, str], ids: Iterable[str]) -> Dict[str, str]:
    """Records restricted to ids, in the original record order."""
    keep = set(ids)
    return {seq_id: seq for seq_id, seq in records.items() if seq_id in keep}

