"""Aligner capability and its MAFFT backend."""

import logging
import os
import shutil
import subprocess
from typing import Dict

from ogrefine.errors import AlignerFailure
from ogrefine.sequences import alignment_width, load_sequences, write_sequences


class Aligner:
    """Produces a multiple sequence alignment from unaligned records."""

    name = "aligner"

    @property
    def is_available(self) -> bool:
        return True

    def align(self, records: Dict[str, str], work_dir: str) -> Dict[str, str]:
        """Align records, using work_dir for any boundary files.

        Returns:
            id -> aligned row, all rows the same width

        Raises:
            AlignerFailure: If the aligner fails or produces no records
        """
        raise NotImplementedError


class MafftAligner(Aligner):
    """Runs MAFFT on a FASTA file written to the round's scratch directory."""

    name = "mafft"

    def __init__(self, executable: str = "mafft", options: str = "--auto", threads: int = 1):
        self.executable = executable
        self.options = options.split()
        self.threads = threads

    @property
    def is_available(self) -> bool:
        return shutil.which(self.executable) is not None

    def build_command(self, input_file: str) -> list:
        return [self.executable, *self.options, "--thread", str(self.threads), input_file]

    def align(self, records: Dict[str, str], work_dir: str) -> Dict[str, str]:
        input_file = os.path.join(work_dir, "mafft_input.fasta")
        output_file = os.path.join(work_dir, "mafft_output.fasta")
        write_sequences(records, input_file)

        cmd = self.build_command(input_file)
        logging.debug(f"Running: {' '.join(cmd)}")
        try:
            with open(output_file, 'w') as f_out:
                subprocess.run(cmd, stdout=f_out, stderr=subprocess.PIPE, text=True, check=True)
        except subprocess.CalledProcessError as e:
            logging.error(f"MAFFT failed with return code {e.returncode}")
            logging.error(f"Command: {' '.join(cmd)}")
            logging.error(f"Stderr: {e.stderr}")
            raise AlignerFailure(f"MAFFT exited with status {e.returncode}") from e
        except OSError as e:
            # FileNotFoundError: MAFFT not in PATH
            raise AlignerFailure(f"Could not run MAFFT ('{self.executable}'): {e}") from e

        try:
            aligned = load_sequences(output_file, "alignment")
            alignment_width(aligned)
        except ValueError as e:
            raise AlignerFailure(f"MAFFT produced an unreadable alignment: {e}") from e

        if not aligned:
            raise AlignerFailure(f"MAFFT produced no aligned records for {len(records)} input sequences")

        return aligned
