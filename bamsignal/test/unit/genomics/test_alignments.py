#!/usr/bin/env python
"""Test cases for :py:mod:`bamsignal.genomics.alignments`"""
import os
import shutil
import tempfile
import unittest

import numpy
import pytest
from numpy.testing import assert_array_equal

from bamsignal.genomics.alignments import AlignmentSource, AlignmentView, ReadPair
from bamsignal.test.common import mate_pair, write_bam


@pytest.mark.unit
class TestAlignmentView(unittest.TestCase):

    def test_segments_from_cigar(self):
        # 10M 100N 5M 2D 5M
        cigar = [(0, 10), (3, 100), (0, 5), (2, 2), (0, 5)]
        self.assertEqual(AlignmentView.segments_from_cigar(50, cigar), [(50, 60), (160, 172)])

    def test_soft_clips_and_insertions_ignored(self):
        cigar = [(4, 3), (0, 10), (1, 2), (0, 5), (4, 1)]
        self.assertEqual(AlignmentView.segments_from_cigar(0, cigar), [(0, 15)])

    def test_splice_properties(self):
        a = AlignmentView("chrA", 50, 172, segments=[(50, 60), (160, 172)])
        self.assertTrue(a.is_spliced)
        self.assertEqual(a.max_gap, 100)
        b = AlignmentView("chrA", 50, 70)
        self.assertFalse(b.is_spliced)
        self.assertEqual(b.max_gap, 0)

    def test_end_before_start_raises(self):
        self.assertRaises(ValueError, AlignmentView, "chrA", 10, 5)


@pytest.mark.unit
class TestReadPair(unittest.TestCase):

    def test_bounds(self):
        fw, rc = mate_pair("frag", 100, 250, length=30)
        pair = ReadPair(fw, rc)
        self.assertEqual((pair.start, pair.end), (100, 280))
        self.assertEqual(pair.fragment_length, 180)

    def test_strand_follows_read1(self):
        self.assertEqual(ReadPair(*mate_pair("a", 100, 200)).strand, "+")
        self.assertEqual(ReadPair(*mate_pair("b", 100, 200, read1_reverse=True)).strand, "-")


@pytest.mark.unit
class TestAlignmentSource(unittest.TestCase):

    def setUp(self):
        self.tempdir = tempfile.mkdtemp(prefix="bamsignal_alignments")
        reads = [
            dict(chrom="chrA", start=10, length=10, seq="ACNNNNGTAC"),
            dict(chrom="chrA", start=15, cigar=[(0, 5), (2, 3), (0, 5)]),
            dict(chrom="chrA", start=40, cigar=[(0, 4), (3, 10), (0, 4)], mapq=0, flag=0x400),
            dict(chrom="chrB", start=0, length=5),
        ]
        fn = write_bam(os.path.join(self.tempdir, "reads.bam"), [("chrA", 100), ("chrB", 50)], reads)
        self.source = AlignmentSource(fn)

    def tearDown(self):
        self.source.close()
        shutil.rmtree(self.tempdir)

    def test_chromosomes_in_header_order(self):
        self.assertEqual([X.name for X in self.source.chromosomes()], ["chrA", "chrB"])
        self.assertEqual(self.source.mapped_on("chrA"), 3)

    def test_coverage_counts_n_bases_but_not_gaps(self):
        expected = numpy.zeros(100, dtype=int)
        expected[10:20] += 1
        expected[15:20] += 1
        expected[23:28] += 1
        expected[40:44] += 1
        expected[54:58] += 1
        assert_array_equal(self.source.coverage("chrA", 0, 100), expected)

    def test_coverage_clipped_to_region(self):
        assert_array_equal(self.source.coverage("chrA", 12, 17), [1, 1, 1, 2, 2])
