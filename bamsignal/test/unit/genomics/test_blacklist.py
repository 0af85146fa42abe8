#!/usr/bin/env python
"""Test cases for :py:mod:`bamsignal.genomics.blacklist`"""
import os
import shutil
import tempfile
import unittest

import pytest

from bamsignal.genomics.blacklist import BlackList
from bamsignal.test.common import fresh_warnings
from bamsignal.util.services.exceptions import FileFormatWarning, MalformedFileError


@pytest.mark.unit
class TestBlackList(unittest.TestCase):

    def setUp(self):
        self.tempdir = tempfile.mkdtemp(prefix="bamsignal_blacklist")

    def tearDown(self):
        shutil.rmtree(self.tempdir)

    def write(self, name, text):
        fn = os.path.join(self.tempdir, name)
        with open(fn, "w") as fout:
            fout.write(text)
        return fn

    def test_overlaps(self):
        bl = BlackList({"chrA": [(100, 200), (150, 300), (300, 310), (500, 600)]})
        self.assertEqual(len(bl), 2)
        self.assertTrue(bl.overlaps("chrA", 305, 306))
        self.assertTrue(bl.overlaps("chrA", 90, 101))
        self.assertFalse(bl.overlaps("chrA", 90, 100))
        self.assertFalse(bl.overlaps("chrA", 310, 500))
        self.assertTrue(bl.overlaps("chrA", 599, 700))
        self.assertFalse(bl.overlaps("chrB", 0, 1000))

    def test_bed(self):
        fn = self.write("bl.bed", "track name=bl\n# comment\nchrA\t100\t200\tname\nchrB\t0\t10\n")
        bl = BlackList.from_file(fn)
        self.assertTrue(bl.overlaps("chrA", 199, 200))
        self.assertFalse(bl.overlaps("chrA", 200, 201))
        self.assertTrue(bl.overlaps("chrB", 5, 6))

    def test_gtf_is_one_based(self):
        fn = self.write("bl.gtf", "chrA\tsrc\texon\t101\t200\t.\t+\t.\tgene_id \"x\";\n")
        bl = BlackList.from_file(fn)
        self.assertTrue(bl.overlaps("chrA", 100, 101))
        self.assertFalse(bl.overlaps("chrA", 99, 100))
        self.assertFalse(bl.overlaps("chrA", 200, 201))

    def test_malformed_line_raises(self):
        fn = self.write("bad.bed", "chrA\tone\t200\n")
        self.assertRaises(MalformedFileError, BlackList.from_file, fn)

    def test_empty_interval_skipped_with_warning(self):
        fn = self.write("bl.bed", "chrA\t100\t100\nchrA\t300\t400\n")
        with fresh_warnings() as caught:
            bl = BlackList.from_file(fn)

        self.assertEqual(len(bl), 1)
        self.assertFalse(bl.overlaps("chrA", 99, 101))
        self.assertTrue(bl.overlaps("chrA", 350, 351))
        self.assertEqual([X.category for X in caught], [FileFormatWarning])

    def test_subset(self):
        bl = BlackList({"chrA": [(0, 10)], "chrB": [(0, 10)]}).subset(["chrB"])
        self.assertIn("chrB", bl)
        self.assertNotIn("chrA", bl)
