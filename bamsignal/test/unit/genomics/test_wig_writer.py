#!/usr/bin/env python
"""Test cases for :py:mod:`bamsignal.genomics.wig_writer`"""
import io
import os
import shutil
import tempfile
import unittest

import numpy
import pytest
from numpy.testing import assert_array_equal

from bamsignal.genomics.chunks import BinaryChunk
from bamsignal.genomics.recording import BEDGRAPH, FIXED_STEP, VARIABLE_STEP, Mode, RecordingConfig
from bamsignal.genomics.wig_writer import WigWriter
from bamsignal.test.common import wiggle_to_arrays
from bamsignal.util.io.binary import encode


def render(writer, values, chrom="chrA", chrom_length=None):
    fh = io.StringIO()
    length = len(values) * writer.bin_size if chrom_length is None else chrom_length
    writer.write_array(fh, chrom, length, values)
    return fh.getvalue()


@pytest.mark.unit
class TestBedGraph(unittest.TestCase):

    def test_runs(self):
        expected = "chrA\t0\t2\t0\nchrA\t2\t4\t2\nchrA\t4\t5\t1\nchrA\t5\t6\t0\n"
        self.assertEqual(render(WigWriter(BEDGRAPH), [0, 0, 2, 2, 1, 0]), expected)

    def test_suppress_zero(self):
        writer = WigWriter(BEDGRAPH, suppress_zero=True)
        self.assertEqual(render(writer, [0, 0, 2, 2, 1, 0]), "chrA\t2\t4\t2\nchrA\t4\t5\t1\n")

    def test_bins_clipped_at_chromosome_end(self):
        writer = WigWriter(BEDGRAPH, bin_size=10)
        self.assertEqual(render(writer, [1, 1, 2], chrom_length=25), "chrA\t0\t20\t1\nchrA\t20\t25\t2\n")

    def test_output_independent_of_window(self):
        rng = numpy.random.RandomState(5)
        values = numpy.repeat(rng.randint(0, 3, size=60), rng.randint(1, 6, size=60))
        for suppress_zero in (False, True):
            expected = render(WigWriter(BEDGRAPH, suppress_zero=suppress_zero, window=100000), values)
            for window in (1, 2, 3, 7, 50):
                writer = WigWriter(BEDGRAPH, suppress_zero=suppress_zero, window=window)
                self.assertEqual(render(writer, values), expected)

    def test_empty_chromosome(self):
        self.assertEqual(render(WigWriter(BEDGRAPH), []), "")


@pytest.mark.unit
class TestWiggle(unittest.TestCase):

    def test_fixed_step(self):
        expected = "fixedStep chrom=chrA start=1 step=5 span=5\n0\n1\n2\n"
        self.assertEqual(render(WigWriter(FIXED_STEP, bin_size=5, window=2), [0, 1, 2]), expected)

    def test_variable_step_skips_zeros(self):
        expected = "variableStep chrom=chrA\n2\t3\n4\t1\n"
        self.assertEqual(render(WigWriter(VARIABLE_STEP, window=3), [0, 3, 0, 1]), expected)

    def test_variable_step_requires_unit_bins(self):
        self.assertRaises(ValueError, WigWriter, VARIABLE_STEP, bin_size=2)
        self.assertRaises(ValueError, WigWriter, "bigwig")


@pytest.mark.unit
class TestValueFormatting(unittest.TestCase):

    def test_fixed_decimals(self):
        writer = WigWriter(FIXED_STEP, decimals=2)
        self.assertEqual(render(writer, numpy.array([0.5, 0.126])).split("\n")[1:3], ["0.50", "0.13"])

    def test_shortest_form(self):
        writer = WigWriter(FIXED_STEP)
        self.assertEqual(render(writer, numpy.array([1.0, 2.5])).split("\n")[1:3], ["1", "2.5"])

    def test_rounding_merges_runs(self):
        writer = WigWriter(BEDGRAPH, decimals=1)
        self.assertEqual(render(writer, numpy.array([1.01, 1.02, 2.0])), "chrA\t0\t2\t1.0\nchrA\t2\t3\t2.0\n")

    def test_from_config(self):
        config = RecordingConfig(Mode.SPAN, bin_size=10, rpm=True, suppress_zero=True)
        writer = WigWriter.from_config(config, window=4)
        self.assertEqual(writer.wig_format, BEDGRAPH)
        self.assertEqual(writer.bin_size, 10)
        self.assertEqual(writer.decimals, 4)
        self.assertTrue(writer.suppress_zero)
        self.assertEqual(writer.window, 4)

    def test_track_line(self):
        self.assertEqual(WigWriter.track_line("x", BEDGRAPH), "track type=bedGraph name=x\n")
        self.assertEqual(WigWriter.track_line("x", FIXED_STEP), "track type=wiggle_0 name=x\n")


@pytest.mark.unit
class TestWriteChunk(unittest.TestCase):

    def setUp(self):
        self.tempdir = tempfile.mkdtemp(prefix="bamsignal_wig")

    def tearDown(self):
        shutil.rmtree(self.tempdir)

    def test_chunk_matches_array(self):
        values = [0, 0, 4, 4, 4, 1, 0, 0, 2]
        chunk = BinaryChunk.write(os.path.join(self.tempdir, "c.bin"), encode(values, "uint32"), "uint32", 3)
        writer = WigWriter(BEDGRAPH, window=2)

        fh = io.StringIO()
        writer.write_chunk(fh, "chrA", 9, chunk)
        self.assertEqual(fh.getvalue(), render(writer, values))


@pytest.mark.unit
class TestRoundTrip(unittest.TestCase):
    """Expanding written text interval by interval gives back the input bins"""

    def check_format(self, wig_format, bin_size, chrom_length):
        rng = numpy.random.RandomState(11)
        n_bins = -(-chrom_length // bin_size)
        values = rng.randint(0, 3, size=n_bins)

        fh = io.StringIO()
        WigWriter(wig_format, bin_size=bin_size, window=7).write_array(fh, "chrA", chrom_length, values)
        fh.seek(0)
        found = wiggle_to_arrays(fh, {"chrA": chrom_length})["chrA"]

        assert_array_equal(found, numpy.repeat(values, bin_size)[:chrom_length])

    def test_bedgraph(self):
        self.check_format(BEDGRAPH, 1, 200)
        self.check_format(BEDGRAPH, 10, 205)

    def test_fixed_step(self):
        self.check_format(FIXED_STEP, 1, 200)
        self.check_format(FIXED_STEP, 5, 23)

    def test_variable_step(self):
        self.check_format(VARIABLE_STEP, 1, 200)
