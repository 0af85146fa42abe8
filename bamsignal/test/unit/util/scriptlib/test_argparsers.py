#!/usr/bin/env python
"""Test cases for :py:mod:`bamsignal.util.scriptlib.argparsers`"""
import argparse
import os
import shutil
import tempfile
import unittest

import pytest

from bamsignal.genomics.recording import BEDGRAPH, FIXED_STEP, Mode
from bamsignal.util.scriptlib.argparsers import BaseParser, PrefixNamespaceWrapper, RecordingParser
from bamsignal.test.common import fresh_warnings
from bamsignal.util.services.exceptions import ArgumentWarning, ConfigurationError


def parse(argstr, prefix=""):
    rp = RecordingParser(prefix=prefix)
    parser = argparse.ArgumentParser(parents=[rp.get_parser()])
    return rp, parser.parse_args(argstr.split())


@pytest.mark.unit
class TestRecordingParser(unittest.TestCase):

    def test_defaults(self):
        rp, args = parse("--in a.bam --out sample --span")
        config = rp.get_config_from_args(args)
        self.assertEqual(args.infiles, ["a.bam"])
        self.assertEqual(config.mode, Mode.SPAN)
        self.assertEqual(config.bin_size, 1)
        self.assertEqual(config.wig_format, BEDGRAPH)
        self.assertEqual((config.min_insert, config.max_insert), (30, 600))
        self.assertEqual(config.max_intron_bp, 50000)
        self.assertTrue(config.keep_secondary)
        self.assertFalse(config.needs_shift_estimate)
        self.assertEqual(args.cpu, 2)

    def test_mode_required(self):
        rp = RecordingParser()
        parser = argparse.ArgumentParser(parents=[rp.get_parser()])
        with pytest.raises(SystemExit):
            parser.parse_args("--in a.bam --out x".split())

    def test_modes_mutually_exclusive(self):
        rp = RecordingParser()
        parser = argparse.ArgumentParser(parents=[rp.get_parser()])
        with pytest.raises(SystemExit):
            parser.parse_args("--in a.bam --out x --start --mid".split())

    def test_shift_without_value_estimates(self):
        rp, args = parse("--in a.bam --out x --start --shift")
        config = rp.get_config_from_args(args)
        self.assertTrue(config.estimate_shift)
        self.assertEqual(config.shift_bp, 0)

    def test_shift_with_value(self):
        rp, args = parse("--in a.bam --out x --start --shift 75")
        config = rp.get_config_from_args(args)
        self.assertFalse(config.estimate_shift)
        self.assertEqual(config.shift_bp, 75)

    def test_filters_and_weights(self):
        rp, args = parse(
            "--in a.bam b.bam --out x --span --qual 10 --nodup --nosecondary --fraction --rpm --mean --scale 2 "
            "--bin 10 --strand"
        )
        config = rp.get_config_from_args(args)
        self.assertEqual(config.min_mapq, 10)
        self.assertFalse(config.keep_duplicate)
        self.assertFalse(config.keep_secondary)
        self.assertTrue(config.keep_supplementary)
        self.assertTrue(config.fraction and config.rpm and config.mean)
        self.assertEqual(config.scale, (2.0, ))
        self.assertEqual(config.strands, ("f", "r"))
        self.assertEqual(config.decimals, 4)

    def test_paired_start_becomes_mid(self):
        rp, args = parse("--in a.bam --out x --start --pe")
        with fresh_warnings() as caught:
            config = rp.get_config_from_args(args)
        self.assertEqual(config.mode, Mode.MID)
        self.assertTrue(any([issubclass(X.category, ArgumentWarning) for X in caught]))

    def test_chrnorm_requires_chrapply(self):
        rp, args = parse("--in a.bam --out x --span --chrnorm 0.5")
        self.assertRaises(ConfigurationError, rp.get_config_from_args, args)

    def test_invalid_combination_raises(self):
        rp, args = parse("--in a.bam --out x --coverage --strand")
        self.assertRaises(ConfigurationError, rp.get_config_from_args, args)

    def test_variable_step_with_bins_becomes_fixed_step(self):
        rp, args = parse("--in a.bam --out x --start --bin 5")
        self.assertEqual(rp.get_config_from_args(args).wig_format, FIXED_STEP)

    def test_estimator_range_checked(self):
        rp, args = parse("--in a.bam --out x --start --shift --min_r 1.5")
        self.assertRaises(ConfigurationError, rp.get_estimator_from_args, args)

    def test_estimator_settings(self):
        rp, args = parse("--in a.bam --out x --start --shift --shift_chroms 2 --zmin 2 --zmax 8 --qual 5 --cpu 3")
        estimator = rp.get_estimator_from_args(args)
        self.assertEqual(estimator.chrom_count, 2)
        self.assertEqual((estimator.zmin, estimator.zmax), (2, 8))
        self.assertEqual(estimator.min_mapq, 5)
        self.assertEqual(estimator.processes, 3)

    def test_blacklist(self):
        tempdir = tempfile.mkdtemp(prefix="bamsignal_argparsers")
        try:
            fn = os.path.join(tempdir, "bl.bed")
            with open(fn, "w") as fout:
                fout.write("chrA\t100\t200\n")
            rp, args = parse("--in a.bam --out x --span --blacklist %s" % fn)
            blacklist = rp.get_blacklist_from_args(args)
            self.assertTrue(blacklist.overlaps("chrA", 150, 160))
        finally:
            shutil.rmtree(tempdir)

        rp, args = parse("--in a.bam --out x --span")
        self.assertIsNone(rp.get_blacklist_from_args(args))

    def test_prefix(self):
        rp, args = parse("--ctl_in a.bam --ctl_out x --ctl_mid --ctl_bin 2", prefix="ctl_")
        self.assertEqual(args.ctl_infiles, ["a.bam"])
        config = rp.get_config_from_args(args)
        self.assertEqual(config.mode, Mode.MID)
        self.assertEqual(config.bin_size, 2)

    def test_disabled(self):
        rp = RecordingParser(disabled=["gz", "coverage"])
        parser = argparse.ArgumentParser(parents=[rp.get_parser()])
        with pytest.raises(SystemExit):
            parser.parse_args("--in a.bam --out x --span --gz".split())
        with pytest.raises(SystemExit):
            parser.parse_args("--in a.bam --out x --coverage".split())


@pytest.mark.unit
class TestBaseParser(unittest.TestCase):

    def get_args(self, argstr):
        bp = BaseParser()
        parser = argparse.ArgumentParser(parents=[bp.get_parser()])
        return bp, parser.parse_args(argstr.split())

    def test_warnlevel(self):
        self.assertEqual(self.get_args("")[1].warnlevel, 0)
        self.assertEqual(self.get_args("-q")[1].warnlevel, -1)
        self.assertEqual(self.get_args("-vv")[1].warnlevel, 2)

    def test_actions(self):
        with fresh_warnings():
            for argstr, action in (("-q", "ignore"), ("", "onceperfamily"), ("-v", "always"), ("-vvvv", "error")):
                bp, args = self.get_args(argstr)
                self.assertEqual(bp.get_base_ops_from_args(args), action)


@pytest.mark.unit
def test_prefix_namespace_wrapper():
    ns = argparse.Namespace(ctl_bin=5, bin=1)
    assert PrefixNamespaceWrapper(ns, "ctl_").bin == 5
    assert PrefixNamespaceWrapper(ns, "").bin == 1
