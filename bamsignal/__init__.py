#!/usr/bin/env python
"""Convert read alignments into genome-wide signal tracks.

This package turns sorted, indexed `BAM`_ files into `wiggle`_, `bedGraph`_
or `BigWig`_ tracks for display in a genome browser. Alignments are reduced to
the positions chosen by one of several position modes, optionally shifted,
extended, weighted and normalized, and recorded into compact per-chromosome
signal arrays. Chromosomes are processed in parallel with a small, bounded
amount of memory per worker.


Package overview
----------------
bamsignal is divided into the following subpackages:

    ==============    =========================================================
    Package           Contents
    --------------    ---------------------------------------------------------
    |bin|             Command-line scripts
    |genomics|        Recording, buffering, merging and writing of signal
    |plotting|        Diagnostic plots of the shift model
    |util|            Utilities (e.g. file openers, exceptions, argument parsers)
    |test|            Unit and functional tests
    ==============    =========================================================

"""
__version__ = "0.1.0"
__author__  = "Joshua Griffin Dunn"
