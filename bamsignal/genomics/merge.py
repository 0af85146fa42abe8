#!/usr/bin/env python
"""Combine and normalize packed signal from one or more samples.

Summary
-------
|NormalizationPlan|
    Per-sample factors computed from alignment counts once all workers have
    finished, plus an optional chromosome-specific factor

|Merger|
    Streams the chunks of all samples for one (chromosome, strand) in fixed-size
    windows, scales each by its sample factor, and sums them into one
    normalized chunk

Normalization factors, for `n` samples with weighted alignment counts `c_i`:

    ===================   ===============================
    **Settings**          **Factor for sample i**
    -------------------   -------------------------------
    rpm, mean             `1e6 / (c_i * n)`
    rpm                   `1e6 / sum(c)`
    mean                  `1 / n`
    none                  `1`
    ===================   ===============================

A scale factor (one for all samples, or one per sample) multiplies on top,
and chromosomes matching the configured pattern are multiplied by the
chromosome factor.
"""
import re

import numpy

from bamsignal.genomics.chunks import BinaryChunk
from bamsignal.util.io.binary import FLOAT_WIDTH, INT_WIDTH
from bamsignal.util.io.openers import NullWriter
from bamsignal.util.services.exceptions import ConfigurationError, DataError, DataWarning, warn

DEFAULT_MERGE_WINDOW = 100000
"""Number of bins read from each chunk at a time"""


class NormalizationPlan(object):
    """Per-sample scaling factors for a run

    Parameters
    ----------
    counts : list of float
        Weighted alignment count of each sample, indexed by sample id

    rpm : bool, optional
        Normalize to reads per million (Default: `False`)

    mean : bool, optional
        Average samples instead of summing them (Default: `False`)

    scale : sequence of float or None, optional
        One factor for all samples, or one per sample

    chrom_scale_pattern : str or None, optional
        Regular expression selecting chromosomes to rescale

    chrom_scale_factor : float, optional
        Factor for chromosomes matching `chrom_scale_pattern`

    Attributes
    ----------
    per_sample_factor : :class:`numpy.ndarray`
        Factor applied to each sample

    total : float
        Sum of weighted counts over all samples
    """

    def __init__(self, counts, rpm=False, mean=False, scale=None, chrom_scale_pattern=None, chrom_scale_factor=1.0):
        self.counts = [float(X) for X in counts]
        self.rpm = rpm
        self.mean = mean
        self.total = sum(self.counts)
        self._chrom_regex = None
        self.chrom_scale_factor = chrom_scale_factor
        if chrom_scale_pattern is not None:
            self._chrom_regex = re.compile(chrom_scale_pattern)

        n = len(self.counts)
        if n == 0:
            raise ConfigurationError("Normalization requires at least one sample.")

        if scale is None:
            scale = [1.0] * n
        elif len(scale) == 1:
            scale = list(scale) * n
        elif len(scale) != n:
            raise ConfigurationError("Found %s scale factors for %s samples." % (len(scale), n))

        factors = []
        for i, count in enumerate(self.counts):
            if rpm:
                denom = count * n if mean else self.total
                if denom == 0:
                    warn("Sample %s has no alignments. Its values are set to zero." % i, DataWarning)
                    factor = 0.0
                else:
                    factor = 1e6 / denom
            elif mean:
                factor = 1.0 / n
            else:
                factor = 1.0
            factors.append(factor * scale[i])

        self.per_sample_factor = numpy.array(factors, dtype=float)

    @classmethod
    def from_config(cls, counts, config):
        """Create a |NormalizationPlan| from sample counts and a |RecordingConfig|"""
        return cls(
            counts,
            rpm=config.rpm,
            mean=config.mean,
            scale=config.scale,
            chrom_scale_pattern=config.chrom_scale_pattern,
            chrom_scale_factor=config.chrom_scale_factor,
        )

    def __repr__(self):
        return "<NormalizationPlan factors=%s>" % ", ".join(["%.6g" % X for X in self.per_sample_factor])

    def __len__(self):
        return len(self.per_sample_factor)

    @property
    def is_identity(self):
        """`True` if merging is plain summation with no scaling"""
        return self._chrom_regex is None and numpy.all(self.per_sample_factor == 1.0)

    def chromosome_factor(self, chrom):
        """Extra factor for `chrom`"""
        if self._chrom_regex is not None and self._chrom_regex.search(chrom):
            return self.chrom_scale_factor
        return 1.0

    def factors_for(self, chrom):
        """Per-sample factors, including the chromosome factor for `chrom`

        Returns
        -------
        :class:`numpy.ndarray`
        """
        return self.per_sample_factor * self.chromosome_factor(chrom)


class Merger(object):
    """Combine per-sample chunks for one (chromosome, strand) into one normalized chunk

    Parameters
    ----------
    plan : |NormalizationPlan|
        Normalization factors

    window : int, optional
        Number of bins read from each chunk at a time (Default: :data:`DEFAULT_MERGE_WINDOW`)

    delete_inputs : bool, optional
        Delete input chunks once merged (Default: `True`)

    printer : file-like, optional
        A stream to which progress can be written (Default: |NullWriter|)
    """

    def __init__(self, plan, window=DEFAULT_MERGE_WINDOW, delete_inputs=True, printer=None):
        self.plan = plan
        self.window = window
        self.delete_inputs = delete_inputs
        self.printer = NullWriter() if printer is None else printer

    def __repr__(self):
        return "<Merger %s window=%s>" % (self.plan, self.window)

    def merge(self, chunks, chrom, out_filename):
        """Merge `chunks` into `out_filename`

        Parameters
        ----------
        chunks : list of |BinaryChunk| or str
            One chunk per sample, in sample-id order. Strings are opened as chunk files.

        chrom : str
            Chromosome name, for the chromosome-specific factor

        out_filename : str
            Path of merged chunk

        Returns
        -------
        |BinaryChunk|
            Merged chunk. Values are float unless the plan is plain summation of
            integer chunks.

        Raises
        ------
        DataError
            If the number of chunks does not match the plan, or chunk lengths differ
        """
        chunks = [BinaryChunk.open(X) if isinstance(X, str) else X for X in chunks]
        if len(chunks) != len(self.plan):
            raise DataError("Expected %s chunks for %s, found %s." % (len(self.plan), chrom, len(chunks)))

        lengths = set([X.length for X in chunks])
        if len(lengths) != 1:
            raise DataError("Chunks for %s differ in length: %s" % (chrom, sorted(lengths)))
        length = lengths.pop()

        factors = self.plan.factors_for(chrom)
        integral = self.plan.is_identity and all([X.width == INT_WIDTH for X in chunks])
        out_width = INT_WIDTH if integral else FLOAT_WIDTH
        count = sum([X.count for X in chunks])

        self.printer.write("Merging %s chunks for %s ..." % (len(chunks), chrom))
        readers = [X.windows(self.window) for X in chunks]
        with BinaryChunk.create(out_filename, out_width, count, length) as writer:
            for windows in zip(*readers):
                if integral:
                    total = numpy.zeros(len(windows[0]), dtype=numpy.int64)
                    for values in windows:
                        total += values
                else:
                    total = numpy.zeros(len(windows[0]), dtype=float)
                    for factor, values in zip(factors, windows):
                        total += factor * values
                writer.write(total)

        merged = writer.chunk
        if self.delete_inputs:
            for chunk in chunks:
                chunk.delete()

        return merged
