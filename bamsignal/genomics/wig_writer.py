#!/usr/bin/env python
"""Serialize per-bin signal as `bedGraph`_, fixedStep `wiggle`_ or
variableStep `wiggle`_ text, one chromosome at a time.

Values are consumed in windows (arrays of consecutive bins), so a chromosome
never needs to be held in memory at once. Run-length state for `bedGraph`_
output is carried across window boundaries, so the output does not depend on
the window size.

    ================   ==========================================================
    **Format**         **Output for each chromosome**
    ----------------   ----------------------------------------------------------
    ``bedgraph``       `chrom  start  end  value` for each run of equal values,
                       0-based half-open coordinates
    ``fixedStep``      header `fixedStep chrom=X start=1 step=B span=B`, then one
                       value per bin
    ``variableStep``   header `variableStep chrom=X`, then `position  value` for
                       each non-zero bin, 1-based. Only for a bin size of 1
    ================   ==========================================================
"""
import numpy

from bamsignal.genomics.recording import BEDGRAPH, FIXED_STEP, VARIABLE_STEP, WIG_FORMATS

DEFAULT_WINDOW = 10000
"""Number of bins read and written at a time"""


class WigWriter(object):
    """Write per-bin values in one of :data:`~bamsignal.genomics.recording.WIG_FORMATS`

    Parameters
    ----------
    wig_format : str
        ``bedgraph``, ``fixedStep`` or ``variableStep``

    bin_size : int, optional
        Width of each bin, in bp (Default: 1)

    decimals : int or None, optional
        Decimal places written. If `None`, whole numbers are written as
        integers and other values in shortest form

    suppress_zero : bool, optional
        Omit zero-valued intervals from `bedGraph`_ output (Default: `False`)

    window : int, optional
        Number of bins processed at a time (Default: :data:`DEFAULT_WINDOW`)
    """

    def __init__(self, wig_format, bin_size=1, decimals=None, suppress_zero=False, window=DEFAULT_WINDOW):
        if wig_format not in WIG_FORMATS:
            raise ValueError("Unknown output format '%s'." % wig_format)
        if wig_format == VARIABLE_STEP and bin_size != 1:
            raise ValueError("variableStep output requires a bin size of 1.")

        self.wig_format = wig_format
        self.bin_size = bin_size
        self.decimals = decimals
        self.suppress_zero = suppress_zero
        self.window = window

    def __repr__(self):
        return "<WigWriter %s bin_size=%s decimals=%s>" % (self.wig_format, self.bin_size, self.decimals)

    @classmethod
    def from_config(cls, config, window=DEFAULT_WINDOW):
        """Create a |WigWriter| using the output settings of a |RecordingConfig|"""
        return cls(
            config.wig_format,
            bin_size=config.bin_size,
            decimals=config.decimals,
            suppress_zero=config.suppress_zero,
            window=window
        )

    @staticmethod
    def track_line(name, wig_format):
        """Return a UCSC track definition line

        Parameters
        ----------
        name : str
            Track name

        wig_format : str
            Output format

        Returns
        -------
        str
        """
        track_type = "bedGraph" if wig_format == BEDGRAPH else "wiggle_0"
        return "track type=%s name=%s\n" % (track_type, name)

    def format_value(self, value):
        """Format one value as text"""
        if self.decimals is not None:
            return "%.*f" % (self.decimals, value)
        value = float(value)
        if value.is_integer():
            return "%d" % value
        return repr(value)

    def _prepare(self, values):
        values = numpy.asarray(values)
        if self.decimals is not None and values.dtype.kind == "f":
            values = numpy.round(values, self.decimals)
        return values

    def write_array(self, fh, chrom, chrom_length, values):
        """Write a whole chromosome from an in-memory array

        Parameters
        ----------
        fh : file-like
            Open text stream

        chrom : str
            Chromosome name

        chrom_length : int
            Chromosome length in bp. Used to clip the last interval.

        values : array-like
            One value per bin
        """
        values = numpy.asarray(values)
        windows = (values[i:i + self.window] for i in range(0, len(values), self.window))
        self.write_windows(fh, chrom, chrom_length, windows)

    def write_chunk(self, fh, chrom, chrom_length, chunk):
        """Write a whole chromosome from a |BinaryChunk|, window by window"""
        self.write_windows(fh, chrom, chrom_length, chunk.windows(self.window))

    def write_windows(self, fh, chrom, chrom_length, windows):
        """Write a whole chromosome from consecutive windows of values

        Parameters
        ----------
        fh : file-like
            Open text stream

        chrom : str
            Chromosome name

        chrom_length : int
            Chromosome length in bp

        windows : iterable of :class:`numpy.ndarray`
            Consecutive windows of per-bin values, starting at bin 0
        """
        if self.wig_format == BEDGRAPH:
            self._write_bedgraph(fh, chrom, chrom_length, windows)
        elif self.wig_format == FIXED_STEP:
            self._write_fixed_step(fh, chrom, windows)
        else:
            self._write_variable_step(fh, chrom, windows)

    def _write_bedgraph(self, fh, chrom, chrom_length, windows):
        b = self.bin_size
        fmt = chrom + "\t%s\t%s\t%s\n"

        def emit(start, end, value):
            if self.suppress_zero and value == 0:
                return ""
            return fmt % (start * b, min(end * b, chrom_length), self.format_value(value))

        run_start = 0
        run_value = None
        offset = 0
        for window in windows:
            values = self._prepare(window)
            n = len(values)
            if n == 0:
                continue

            change = numpy.flatnonzero(values[1:] != values[:-1]) + 1
            starts = numpy.concatenate(([0], change))
            ltmp = []
            for s in starts:
                value = values[s]
                if s == 0 and run_value is not None and value == run_value:
                    continue
                if run_value is not None:
                    ltmp.append(emit(run_start, offset + s, run_value))
                run_start = offset + s
                run_value = value

            fh.write("".join(ltmp))
            offset += n

        if run_value is not None:
            fh.write(emit(run_start, offset, run_value))

    def _write_fixed_step(self, fh, chrom, windows):
        fh.write("fixedStep chrom=%s start=1 step=%s span=%s\n" % (chrom, self.bin_size, self.bin_size))
        for window in windows:
            values = self._prepare(window)
            fh.write("".join([self.format_value(X) + "\n" for X in values]))

    def _write_variable_step(self, fh, chrom, windows):
        fh.write("variableStep chrom=%s\n" % chrom)
        offset = 0
        for window in windows:
            values = self._prepare(window)
            idx = numpy.flatnonzero(values)
            fh.write("".join(["%s\t%s\n" % (offset + i + 1, self.format_value(values[i])) for i in idx]))
            offset += len(values)
