"""Trimmer capability and its trimAl backend."""

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from typing import Dict, Optional

from ogrefine.errors import ConfigurationError, TrimmerFailure
from ogrefine.sequences import load_sequences, write_sequences


AUTOMATED = "automated"
GAP_THRESHOLD = "gap_threshold"


@dataclass(frozen=True)
class TrimMode:
    """Column trimming mode: trimAl's automated heuristic or a gap threshold.

    Attributes:
        kind: AUTOMATED or GAP_THRESHOLD
        gap_threshold: Gap threshold in [0.0, 1.0], only for GAP_THRESHOLD
    """
    kind: str
    gap_threshold: Optional[float] = None

    def __post_init__(self):
        if self.kind == AUTOMATED:
            if self.gap_threshold is not None:
                raise ConfigurationError("Automated trimming does not take a gap threshold")
        elif self.kind == GAP_THRESHOLD:
            if self.gap_threshold is None or not 0.0 <= self.gap_threshold <= 1.0:
                raise ConfigurationError(
                    f"Gap threshold must be between 0.0 and 1.0, got {self.gap_threshold}")
        else:
            raise ConfigurationError(f"Unknown trim mode: {self.kind}")

    @classmethod
    def automated(cls) -> 'TrimMode':
        return cls(AUTOMATED)

    @classmethod
    def gap_fraction(cls, threshold: float) -> 'TrimMode':
        return cls(GAP_THRESHOLD, threshold)

    def __str__(self) -> str:
        if self.kind == AUTOMATED:
            return AUTOMATED
        return f"{GAP_THRESHOLD}={self.gap_threshold}"


class Trimmer:
    """Removes poorly aligned columns from an alignment."""

    name = "trimmer"

    @property
    def is_available(self) -> bool:
        return True

    def trim(self, alignment: Dict[str, str], mode: TrimMode, work_dir: str) -> Dict[str, str]:
        """Trim alignment columns, using work_dir for any boundary files.

        Returns:
            id -> trimmed row. Sequences the trimmer drops entirely are absent.

        Raises:
            TrimmerFailure: If the trimmer fails or writes no output
        """
        raise NotImplementedError


class TrimalTrimmer(Trimmer):
    """Runs trimAl with -automated1 or -gt."""

    name = "trimal"

    def __init__(self, executable: str = "trimal"):
        self.executable = executable

    @property
    def is_available(self) -> bool:
        return shutil.which(self.executable) is not None

    def build_command(self, input_file: str, output_file: str, mode: TrimMode) -> list:
        cmd = [self.executable, "-in", input_file, "-out", output_file, "-fasta"]
        if mode.kind == AUTOMATED:
            cmd.append("-automated1")
        else:
            cmd.extend(["-gt", str(mode.gap_threshold)])
        return cmd

    def trim(self, alignment: Dict[str, str], mode: TrimMode, work_dir: str) -> Dict[str, str]:
        input_file = os.path.join(work_dir, "trimal_input.fasta")
        output_file = os.path.join(work_dir, "trimal_output.fasta")
        write_sequences(alignment, input_file)

        cmd = self.build_command(input_file, output_file, mode)
        logging.debug(f"Running: {' '.join(cmd)}")
        try:
            subprocess.run(cmd, capture_output=True, text=True, check=True)
        except subprocess.CalledProcessError as e:
            logging.error(f"trimAl failed with return code {e.returncode}")
            logging.error(f"Command: {' '.join(cmd)}")
            logging.error(f"Stderr: {e.stderr}")
            raise TrimmerFailure(f"trimAl exited with status {e.returncode}") from e
        except OSError as e:
            raise TrimmerFailure(f"Could not run trimAl ('{self.executable}'): {e}") from e

        if not os.path.exists(output_file):
            raise TrimmerFailure(f"trimAl wrote no output for {len(alignment)} aligned sequences")

        try:
            return load_sequences(output_file, "trimmed alignment")
        except ValueError as e:
            raise TrimmerFailure(f"trimAl produced an unreadable alignment: {e}") from e
