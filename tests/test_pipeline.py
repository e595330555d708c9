#!/usr/bin/env python3
"""
Tests for run-level orchestration: discovery, parity gate, exclusion of
small orthogroups and the run manifest.
"""

import json
import os
import shutil
import tempfile

import pytest

from fakes import CoverageTrimmer, FailingAligner, PaddingAligner
from ogrefine.config import RefinementConfig
from ogrefine.errors import AlignerFailure, IdentifierMismatchError, MalformedRecordError
from ogrefine.external import TrimMode
from ogrefine.pipeline import MANIFEST_NAME, discover_orthogroups, run_pipeline
from ogrefine.sequences import write_sequences
from ogrefine.types import FRAME_MISMATCH


CDS = "ATGAAAGTTCTGGCATGGGAACGTACCTATTAA"


class TestPipeline:

    @pytest.fixture
    def temp_dir(self):
        """Create temporary input/output directories for a run."""
        test_dir = tempfile.mkdtemp(prefix='ogrefine_pipeline_test_')
        os.makedirs(os.path.join(test_dir, 'input'))
        yield test_dir
        shutil.rmtree(test_dir)

    def _write_orthogroup(self, temp_dir, og_id, count, nucleotide=True):
        input_dir = os.path.join(temp_dir, 'input')
        protein = {f"{og_id}_s{i}": "MKVLAWERTY" for i in range(count)}
        write_sequences(protein, os.path.join(input_dir, f"{og_id}.faa"))
        if nucleotide:
            write_sequences({seq_id: CDS for seq_id in protein},
                            os.path.join(input_dir, f"{og_id}.fna"))
        return protein

    def _config(self, temp_dir, **overrides):
        settings = dict(
            input_dir=os.path.join(temp_dir, 'input'),
            output_dir=os.path.join(temp_dir, 'output'),
            trim_mode=TrimMode.automated(),
            min_coverage=0.5,
            max_iterations=3,
            nucleotide=True,
            workers=1,
        )
        settings.update(overrides)
        return RefinementConfig(**settings)

    def test_run_writes_manifest_and_alignments(self, temp_dir):
        self._write_orthogroup(temp_dir, "1", 5)
        self._write_orthogroup(temp_dir, "2", 4)
        config = self._config(temp_dir)

        manifest = run_pipeline(config, PaddingAligner(), CoverageTrimmer({"1_s2": 0.4}))

        manifest_file = os.path.join(config.output_dir, MANIFEST_NAME)
        with open(manifest_file) as f:
            assert json.load(f)["summary"] == manifest["summary"]

        summary = manifest["summary"]
        assert summary["orthogroups_found"] == 2
        assert summary["orthogroups_refined"] == 2
        assert summary["converged"] == 2
        assert summary["sequences_in"] == 9
        assert summary["sequences_retained"] == 8
        assert manifest["orthogroups"]["1"]["iterations"] == 2
        assert manifest["orthogroups"]["1"]["discarded"] == ["1_s2"]
        assert manifest["orthogroups"]["2"]["iterations"] == 1
        assert manifest["non_converged"] == []

        for name in ["1.faa.aln.trim.filter", "1.fna.aln.trim.filter", "2.fna.aln"]:
            assert os.path.exists(os.path.join(config.output_dir, name))

    def test_small_orthogroups_excluded(self, temp_dir):
        self._write_orthogroup(temp_dir, "big", 3)
        self._write_orthogroup(temp_dir, "tiny", 2)
        aligner = PaddingAligner()

        manifest = run_pipeline(self._config(temp_dir), aligner, CoverageTrimmer())

        assert manifest["excluded_orthogroups"] == {"tiny": 2}
        assert list(manifest["orthogroups"]) == ["big"]
        assert len(aligner.calls) == 1

    def test_codon_skips_listed_in_manifest(self, temp_dir):
        protein = self._write_orthogroup(temp_dir, "5", 3)
        nucleotide = {seq_id: CDS for seq_id in protein}
        nucleotide["5_s1"] = CDS[:-3] + "A"
        write_sequences(nucleotide, os.path.join(temp_dir, 'input', "5.fna"))

        manifest = run_pipeline(self._config(temp_dir), PaddingAligner(), CoverageTrimmer())

        assert manifest["skipped_sequences"] == [
            {"orthogroup": "5", "id": "5_s1", "reason": FRAME_MISMATCH}
        ]
        assert manifest["summary"]["codon_skips"] == 1

    def test_non_converged_orthogroup_listed(self, temp_dir):
        self._write_orthogroup(temp_dir, "7", 5)
        trimmer = CoverageTrimmer({"7_s4": 0.1})
        config = self._config(temp_dir, max_iterations=1)

        manifest = run_pipeline(config, PaddingAligner(), trimmer)

        assert manifest["non_converged"] == [
            {"orthogroup": "7", "status": "max_iterations", "iterations": 1}
        ]

    def test_missing_nucleotide_file_is_fatal(self, temp_dir):
        self._write_orthogroup(temp_dir, "1", 3)
        self._write_orthogroup(temp_dir, "2", 3, nucleotide=False)

        with pytest.raises(IdentifierMismatchError):
            run_pipeline(self._config(temp_dir), PaddingAligner(), CoverageTrimmer())

    def test_nucleotide_files_ignored_without_codon_output(self, temp_dir):
        self._write_orthogroup(temp_dir, "1", 3)
        self._write_orthogroup(temp_dir, "2", 3, nucleotide=False)

        protein_files, nucleotide_files = discover_orthogroups(self._config(temp_dir, nucleotide=False))

        assert sorted(protein_files) == ["1", "2"]
        assert nucleotide_files is None

    def test_malformed_input_is_fatal(self, temp_dir):
        self._write_orthogroup(temp_dir, "1", 3, nucleotide=False)
        with open(os.path.join(temp_dir, 'input', "2.faa"), 'w') as f:
            f.write(">a\nMKV\n>\nMKV\n>c\nMKV\n")

        with pytest.raises(MalformedRecordError):
            run_pipeline(self._config(temp_dir, nucleotide=False), PaddingAligner(), CoverageTrimmer())

    def test_unavailable_aligner_fails_before_work(self, temp_dir):
        self._write_orthogroup(temp_dir, "1", 3)
        config = self._config(temp_dir, mafft_exe="ogrefine-test-no-such-mafft")

        with pytest.raises(AlignerFailure):
            run_pipeline(config, trimmer=CoverageTrimmer())

        assert not os.path.exists(os.path.join(config.output_dir, MANIFEST_NAME))

    def test_empty_input_directory(self, temp_dir):
        manifest = run_pipeline(self._config(temp_dir), PaddingAligner(), CoverageTrimmer())

        assert manifest["summary"]["orthogroups_found"] == 0
        assert manifest["summary"]["mean_iterations"] is None

    def test_worker_pool_refines_all_orthogroups(self, temp_dir):
        for og_id in ["1", "2", "3"]:
            self._write_orthogroup(temp_dir, og_id, 5)
        config = self._config(temp_dir, workers=3)

        manifest = run_pipeline(config, PaddingAligner(), CoverageTrimmer({"2_s1": 0.2}))

        summary = manifest["summary"]
        assert manifest["parameters"]["workers"] == 3
        assert summary["orthogroups_refined"] == 3
        assert summary["converged"] == 3
        assert summary["sequences_in"] == 15
        assert summary["sequences_retained"] == 14
        assert manifest["orthogroups"]["2"]["discarded"] == ["2_s1"]
        for og_id in ["1", "2", "3"]:
            assert os.path.exists(os.path.join(config.output_dir, f"{og_id}.fna.aln.trim.filter"))

    def test_worker_failure_aborts_run(self, temp_dir):
        for og_id in ["1", "2", "3", "4"]:
            self._write_orthogroup(temp_dir, og_id, 3)
        config = self._config(temp_dir, workers=2)

        with pytest.raises(AlignerFailure):
            run_pipeline(config, FailingAligner(), CoverageTrimmer())

        assert not os.path.exists(os.path.join(config.output_dir, MANIFEST_NAME))
