#!/usr/bin/env python
"""Test cases for :py:mod:`bamsignal.genomics.shift`

Synthetic data place one fragment pile-up among 42 windows of light
background. The pile-up has its forward 5' ends at bin 1017 and its reverse
5' ends at bin 1033, so moving each strand 8 bins toward the other aligns
them, for a shift of 80 bp.
"""
import math
import os
import shutil
import tempfile
import unittest

import numpy
import pytest

from bamsignal.genomics.alignments import Chromosome
from bamsignal.genomics.shift import (
    MAX_SHIFT_BINS,
    ShiftEstimator,
    ShiftResult,
    ShiftSample,
    high_coverage_windows,
    sample_chromosome,
    scan_chromosome,
    window_correlations,
)
from bamsignal.test.common import FakeSource, read, synthetic_reads, write_bam
from bamsignal.util.services.exceptions import ShiftEstimationError

N_WINDOWS = 42


def synthetic_counts():
    f_counts = numpy.zeros(N_WINDOWS * 50)
    r_counts = numpy.zeros(N_WINDOWS * 50)
    for w in range(N_WINDOWS):
        f_counts[50 * w + 5] += 1
        r_counts[50 * w + 30] += 1

    f_counts[1017] += 100
    r_counts[1033] += 100
    return f_counts, r_counts


def fake_sample(shift):
    profile = numpy.zeros(150)
    return ShiftSample("chrA", 0, shift, profile, profile, profile, numpy.zeros(MAX_SHIFT_BINS + 1))


@pytest.mark.unit
class TestNumericCore(unittest.TestCase):

    def test_high_coverage_windows(self):
        f_counts, r_counts = synthetic_counts()
        self.assertEqual(high_coverage_windows(f_counts, r_counts), [1000])

    def test_z_band_excludes_everything(self):
        f_counts, r_counts = synthetic_counts()
        self.assertEqual(high_coverage_windows(f_counts, r_counts, zmin=7, zmax=10), [])
        self.assertEqual(high_coverage_windows(numpy.zeros(100), numpy.zeros(100)), [])

    def test_window_correlations(self):
        f_profile = numpy.zeros(20)
        r_profile = numpy.zeros(20)
        f_profile[4] = 10
        r_profile[10] = 10
        correlations = window_correlations(f_profile, r_profile, max_shift=5)
        self.assertEqual(len(correlations), 6)
        self.assertEqual(int(numpy.nanargmax(correlations)), 3)
        self.assertAlmostEqual(correlations[3], 1.0)

    def test_flat_profile_gives_nan(self):
        correlations = window_correlations(numpy.zeros(10), numpy.ones(10), max_shift=2)
        self.assertTrue(all([math.isnan(X) for X in correlations]))

    def test_sample_chromosome(self):
        f_counts, r_counts = synthetic_counts()
        samples = sample_chromosome("chrA", f_counts, r_counts)
        self.assertEqual(len(samples), 1)
        self.assertEqual(samples[0].shift, 80)
        self.assertEqual(samples[0].start, 10000)
        self.assertEqual(samples[0].region, "chrA:10000..10500")
        self.assertEqual(len(samples[0].correlations), MAX_SHIFT_BINS + 1)
        self.assertEqual(int(numpy.argmax(samples[0].shifted_profile)), 75)

    def test_high_min_r_rejects(self):
        f_counts, r_counts = synthetic_counts()
        r_counts[1033] = 0
        r_counts[1040:1060] = 5
        self.assertEqual(sample_chromosome("chrA", f_counts, r_counts, min_r=0.99), [])

    def test_scan_chromosome(self):
        source = FakeSource(
            [
                read(15),
                read(15, is_duplicate=True),
                read(18, is_secondary=True),
                read(30, mapping_quality=2),
                read(100, 50, is_reverse=True),
            ]
        )
        f_counts, r_counts = scan_chromosome(source, "chrA", 1000, min_mapq=5)
        self.assertEqual(len(f_counts), 101)
        self.assertEqual(f_counts[1], 1)
        self.assertEqual(f_counts.sum(), 1)
        self.assertEqual(r_counts[14], 1)
        self.assertEqual(r_counts.sum(), 1)


@pytest.mark.unit
class TestShiftEstimator(unittest.TestCase):

    def setUp(self):
        self.tempdir = tempfile.mkdtemp(prefix="bamsignal_shift")

    def tearDown(self):
        shutil.rmtree(self.tempdir)

    def test_invalid_parameters(self):
        self.assertRaises(ValueError, ShiftEstimator, min_r=0)
        self.assertRaises(ValueError, ShiftEstimator, min_r=1.5)
        self.assertRaises(ValueError, ShiftEstimator, zmin=5, zmax=5)

    def test_choose_chromosomes(self):
        chroms = [Chromosome("a", 10), Chromosome("b", 30), Chromosome("c", 20)]
        self.assertEqual([X.name for X in ShiftEstimator(chrom_count=2).choose_chromosomes(chroms)], ["b", "c"])

    def test_aggregate_trims_outliers(self):
        result = ShiftEstimator().aggregate([fake_sample(X) for X in (100, 100, 110, 90, 400)])
        self.assertEqual(result.shift, 100)
        self.assertEqual(len(result.samples), 4)
        self.assertEqual(result.all_shifts, [100, 100, 110, 90, 400])

    def test_aggregate_rounds_half_up(self):
        self.assertEqual(ShiftEstimator().aggregate([fake_sample(X) for X in (80, 85)]).shift, 83)

    def test_aggregate_without_samples(self):
        self.assertRaises(ShiftEstimationError, ShiftEstimator().aggregate, [])

    def test_estimate_from_bam(self):
        fn = write_bam(os.path.join(self.tempdir, "reads.bam"), [("chrA", 21000), ("chrB", 500)], synthetic_reads())
        result = ShiftEstimator(chrom_count=1).estimate(fn)
        self.assertEqual(result.shift, 80)
        self.assertEqual(len(result.samples), 1)

    def test_estimate_without_signal(self):
        reads = [dict(chrom="chrA", start=10 * X) for X in range(50)]
        fn = write_bam(os.path.join(self.tempdir, "flat.bam"), [("chrA", 1000)], reads)
        self.assertRaises(ShiftEstimationError, ShiftEstimator().estimate, fn)


@pytest.mark.unit
class TestShiftResult(unittest.TestCase):

    def setUp(self):
        self.tempdir = tempfile.mkdtemp(prefix="bamsignal_shift")
        f_counts, r_counts = synthetic_counts()
        samples = sample_chromosome("chrA", f_counts, r_counts)
        self.result = ShiftResult(80, samples, [80], 0.5)

    def tearDown(self):
        shutil.rmtree(self.tempdir)

    def test_model_table(self):
        table = self.result.model_table()
        self.assertEqual(list(table.columns), ["Start", "F", "R", "Shift"])
        self.assertEqual(len(table), 91)
        self.assertEqual(table["Start"].iloc[45], 0)
        self.assertEqual(table["Shift"].idxmax(), 45)

    def test_correlation_table(self):
        table = self.result.correlation_table()
        self.assertEqual(len(table), MAX_SHIFT_BINS + 1)
        self.assertEqual(int(table["Shift"].iloc[table["R"].idxmax()]), 80)

    def test_empty_tables(self):
        empty = ShiftResult(0, [], [], 0.5)
        self.assertEqual(len(empty.model_table()), 91)
        self.assertEqual(empty.correlation_table()["R"].sum(), 0)

    def test_write_model(self):
        outbase = os.path.join(self.tempdir, "out")
        files = self.result.write_model(outbase, {"shift": -1})
        self.assertEqual(files, [outbase + "_model.txt", outbase + "_correlations.txt"])
        with open(files[0]) as fh:
            text = fh.read()
        self.assertIn("## final shift: 80 bp", text)
        self.assertIn("Start\tF\tR\tShift", text)
