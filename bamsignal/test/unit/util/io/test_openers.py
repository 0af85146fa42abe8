#!/usr/bin/env python
"""Test cases for :py:mod:`bamsignal.util.io.openers` and :py:mod:`bamsignal.util.io.filters`"""
import argparse
import io
import os
import shutil
import tempfile
import unittest

import pandas as pd
import pytest

from bamsignal.util.io.filters import CommentReader, NameDateWriter, SkipBlankReader
from bamsignal.util.io.openers import args_to_comment, argsopener, get_short_name, opener


@pytest.mark.unit
class TestOpeners(unittest.TestCase):

    def setUp(self):
        self.tempdir = tempfile.mkdtemp(prefix="bamsignal_openers")

    def tearDown(self):
        shutil.rmtree(self.tempdir)

    def test_opener_gzip_text_round_trip(self):
        fn = os.path.join(self.tempdir, "test.txt.gz")
        with opener(fn, "w") as fout:
            fout.write("chrA\t0\t5\t1\n")
        with open(fn, "rb") as fh:
            self.assertEqual(fh.read(2), b"\x1f\x8b")
        with opener(fn) as fh:
            self.assertEqual(fh.read(), "chrA\t0\t5\t1\n")

    def test_argsopener_header_and_table(self):
        fn = os.path.join(self.tempdir, "table.txt")
        ns = argparse.Namespace(out="sample", bin=10)
        with argsopener(fn, ns) as fout:
            pd.DataFrame({"a": [1, 2], "b": [3.0, 4.0]}).to_csv(fout, sep="\t", index=False)

        with open(fn) as fh:
            lines = fh.readlines()
        self.assertTrue(lines[0].startswith("## date"))
        self.assertTrue(any(["'out'" in X and "'sample'" in X for X in lines]))

        df = pd.read_csv(fn, sep="\t", comment="#")
        self.assertEqual(list(df.columns), ["a", "b"])
        self.assertEqual(list(df["a"]), [1, 2])

    def test_args_to_comment_accepts_dict(self):
        text = args_to_comment({"shift": 80})
        self.assertIn("'shift'", text)
        self.assertTrue(all([X.startswith("##") for X in text.strip().split("\n")]))

    def test_get_short_name(self):
        self.assertEqual(get_short_name("/home/user/bam2wig.py", terminator=".py"), "bam2wig")
        self.assertEqual(get_short_name("bamsignal.bin.bam2wig", separator=r"\."), "bam2wig")


@pytest.mark.unit
class TestFilters(unittest.TestCase):

    def test_comment_and_blank_lines_skipped(self):
        text = "track type=bedGraph\n# comment\n\nchrA\t0\t5\t1\n   \nchrA\t5\t6\t2\n"
        reader = CommentReader(SkipBlankReader(io.StringIO(text)))
        self.assertEqual(list(reader), ["chrA\t0\t5\t1\n", "chrA\t5\t6\t2\n"])
        self.assertEqual(reader.comments, ["track type=bedGraph", "# comment"])

    def test_name_date_writer(self):
        stream = io.StringIO()
        writer = NameDateWriter("bam2wig", stream=stream)
        writer.write("Recording\n")
        line = stream.getvalue()
        self.assertTrue(line.startswith("bam2wig ["))
        self.assertTrue(line.endswith("]: Recording\n"))
