#!/usr/bin/env python
"""This package contains the machinery that turns alignments into signal.

Package overview
================

    ===================================================  ==================================================================
    **Submodule**                                        **Description**
    ---------------------------------------------------  ------------------------------------------------------------------
    :py:mod:`~bamsignal.genomics.alignments`             Views of read alignments and an indexed `BAM`_ source

    :py:mod:`~bamsignal.genomics.blacklist`              Regions whose alignments are skipped

    :py:mod:`~bamsignal.genomics.recording`              Run settings, alignment filters, and rules choosing which
                                                         positions of each alignment receive signal

    :py:mod:`~bamsignal.genomics.signal_buffer`          Sliding accumulator that packs finished bins as it goes

    :py:mod:`~bamsignal.genomics.chunks`                 Packed per-chromosome signal files

    :py:mod:`~bamsignal.genomics.shift`                  Estimation of read shift by strand cross-correlation

    :py:mod:`~bamsignal.genomics.worker`                 Recording of one sample on one chromosome

    :py:mod:`~bamsignal.genomics.merge`                  Normalization and merging of samples

    :py:mod:`~bamsignal.genomics.wig_writer`             Serialization of signal as `wiggle`_ or `bedGraph`_ text

    :py:mod:`~bamsignal.genomics.orchestrator`           Coordination of a whole run
    ===================================================  ==================================================================
"""
