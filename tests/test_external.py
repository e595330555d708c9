#!/usr/bin/env python3
"""
Tests for the MAFFT and trimAl wrappers.

subprocess.run is patched so the wrappers are exercised without the tools
installed; the fake runs write the files the real tools would produce.
"""

import os
import subprocess
import tempfile
from unittest.mock import patch

import pytest

from ogrefine.errors import AlignerFailure, ConfigurationError, TrimmerFailure
from ogrefine.external import MafftAligner, TrimalTrimmer, TrimMode


RECORDS = {"a": "MKVLA", "b": "MKLA", "c": "MVLA"}
ALIGNED_FASTA = ">a\nMKVLA\n>b\nMK-LA\n>c\nM-VLA\n"


@pytest.fixture
def work_dir():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


class TestTrimMode:

    def test_automated(self):
        assert str(TrimMode.automated()) == "automated"

    @pytest.mark.parametrize("threshold", [0.0, 0.5, 1.0])
    def test_gap_threshold_in_range(self, threshold):
        assert TrimMode.gap_fraction(threshold).gap_threshold == threshold

    @pytest.mark.parametrize("threshold", [-0.1, 1.01, None])
    def test_gap_threshold_out_of_range(self, threshold):
        with pytest.raises(ConfigurationError):
            TrimMode.gap_fraction(threshold)

    def test_unknown_kind(self):
        with pytest.raises(ConfigurationError):
            TrimMode("strict")


class TestMafftAligner:

    def test_build_command(self):
        aligner = MafftAligner("mafft", "--maxiterate 1000 --localpair", threads=4)

        assert aligner.build_command("in.fasta") == [
            "mafft", "--maxiterate", "1000", "--localpair", "--thread", "4", "in.fasta"
        ]

    def test_align_reads_stdout_alignment(self, work_dir):
        def fake_run(cmd, stdout=None, **kwargs):
            assert os.path.exists(cmd[-1])
            stdout.write(ALIGNED_FASTA)
            return subprocess.CompletedProcess(cmd, 0)

        with patch('subprocess.run', side_effect=fake_run):
            aligned = MafftAligner().align(RECORDS, work_dir)

        assert aligned == {"a": "MKVLA", "b": "MK-LA", "c": "M-VLA"}

    def test_nonzero_exit_raises_aligner_failure(self, work_dir):
        error = subprocess.CalledProcessError(1, ["mafft"], stderr="bad input")
        with patch('subprocess.run', side_effect=error):
            with pytest.raises(AlignerFailure, match="status 1"):
                MafftAligner().align(RECORDS, work_dir)

    def test_missing_executable_raises_aligner_failure(self, work_dir):
        with patch('subprocess.run', side_effect=FileNotFoundError("mafft")):
            with pytest.raises(AlignerFailure):
                MafftAligner().align(RECORDS, work_dir)

    def test_empty_output_raises_aligner_failure(self, work_dir):
        with patch('subprocess.run', return_value=subprocess.CompletedProcess([], 0)):
            with pytest.raises(AlignerFailure, match="no aligned records"):
                MafftAligner().align(RECORDS, work_dir)

    def test_ragged_output_raises_aligner_failure(self, work_dir):
        def fake_run(cmd, stdout=None, **kwargs):
            stdout.write(">a\nMKVLA\n>b\nMK\n")
            return subprocess.CompletedProcess(cmd, 0)

        with patch('subprocess.run', side_effect=fake_run):
            with pytest.raises(AlignerFailure):
                MafftAligner().align(RECORDS, work_dir)

    def test_is_available_uses_path_lookup(self):
        with patch('shutil.which', return_value=None):
            assert not MafftAligner().is_available
        with patch('shutil.which', return_value="/usr/bin/mafft"):
            assert MafftAligner().is_available


class TestTrimalTrimmer:

    def test_build_command_automated(self):
        cmd = TrimalTrimmer().build_command("in.fa", "out.fa", TrimMode.automated())

        assert cmd == ["trimal", "-in", "in.fa", "-out", "out.fa", "-fasta", "-automated1"]

    def test_build_command_gap_threshold(self):
        cmd = TrimalTrimmer("/opt/trimal").build_command("in.fa", "out.fa", TrimMode.gap_fraction(0.3))

        assert cmd[0] == "/opt/trimal"
        assert cmd[-2:] == ["-gt", "0.3"]

    def test_trim_reads_output_file(self, work_dir):
        def fake_run(cmd, **kwargs):
            with open(cmd[cmd.index("-out") + 1], 'w') as f:
                f.write(">a\nMKLA\n>b\nMKLA\n>c\nM-LA\n")
            return subprocess.CompletedProcess(cmd, 0)

        alignment = {"a": "MKVLA", "b": "MK-LA", "c": "M-VLA"}
        with patch('subprocess.run', side_effect=fake_run):
            trimmed = TrimalTrimmer().trim(alignment, TrimMode.automated(), work_dir)

        assert trimmed == {"a": "MKLA", "b": "MKLA", "c": "M-LA"}

    def test_missing_output_raises_trimmer_failure(self, work_dir):
        with patch('subprocess.run', return_value=subprocess.CompletedProcess([], 0)):
            with pytest.raises(TrimmerFailure, match="no output"):
                TrimalTrimmer().trim({"a": "MK"}, TrimMode.automated(), work_dir)

    def test_nonzero_exit_raises_trimmer_failure(self, work_dir):
        error = subprocess.CalledProcessError(2, ["trimal"], stderr="ERROR")
        with patch('subprocess.run', side_effect=error):
            with pytest.raises(TrimmerFailure, match="status 2"):
                TrimalTrimmer().trim({"a": "MK"}, TrimMode.automated(), work_dir)
