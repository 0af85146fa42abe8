#!/usr/bin/env python
"""Genomic intervals to exclude from signal tracks.

Intervals are read from `BED`_ files (0-based), `GTF2`_/`GFF3`_ files
(1-based, inclusive; columns 4 and 5) or any tab-delimited file whose first
three columns are `chrom`, `start`, `end` in 0-based, half-open coordinates.
Overlapping and book-ended intervals are merged on loading, so each chromosome
is held as two sorted arrays and queried by binary search.
"""
import numpy

from bamsignal.util.io.openers import opener
from bamsignal.util.io.filters import CommentReader, SkipBlankReader
from bamsignal.util.services.exceptions import FileFormatWarning, MalformedFileError, warn

_ONE_BASED_EXTENSIONS = (".gff", ".gff3", ".gtf")


def _merge_intervals(intervals):
    """Merge overlapping or adjacent `(start, end)` pairs

    Returns
    -------
    :class:`numpy.ndarray`, :class:`numpy.ndarray`
        Sorted starts and ends of the merged intervals
    """
    merged = []
    for start, end in sorted(intervals):
        if merged and start <= merged[-1][1]:
            merged[-1][1] = max(merged[-1][1], end)
        else:
            merged.append([start, end])

    starts = numpy.array([X[0] for X in merged], dtype=numpy.int64)
    ends = numpy.array([X[1] for X in merged], dtype=numpy.int64)
    return starts, ends


class BlackList(object):
    """Sorted, merged intervals per chromosome that alignments must not touch

    Parameters
    ----------
    intervals : dict, optional
        Dictionary mapping chromosome names to lists of `(start, end)` pairs,
        0-based and half-open

    Examples
    --------
    >>> bl = BlackList({"chrI": [(100, 200), (150, 300)]})
    >>> bl.overlaps("chrI", 290, 310)
    True
    >>> bl.overlaps("chrI", 300, 310)
    False
    """

    def __init__(self, intervals=None):
        self._intervals = {}
        for chrom, ltmp in (intervals or {}).items():
            self._intervals[chrom] = _merge_intervals(ltmp)

    def __repr__(self):
        return "<BlackList %s intervals on %s chromosomes>" % (len(self), len(self._intervals))

    def __len__(self):
        return sum([len(X[0]) for X in self._intervals.values()])

    def __contains__(self, chrom):
        return chrom in self._intervals

    @classmethod
    def from_file(cls, filename):
        """Read intervals from a `BED`_, `GTF2`_, `GFF3`_ or plain three-column file

        Parameters
        ----------
        filename : str
            Name of file. May be gzipped.

        Returns
        -------
        |BlackList|

        Raises
        ------
        MalformedFileError
            If a line cannot be parsed
        """
        stem = filename[:-3] if filename.endswith(".gz") else filename
        one_based = stem.lower().endswith(_ONE_BASED_EXTENSIONS)
        columns = (0, 3, 4) if one_based else (0, 1, 2)

        intervals = {}
        with opener(filename) as fh:
            for n, line in enumerate(CommentReader(SkipBlankReader(fh))):
                items = line.rstrip("\n").split("\t")
                try:
                    chrom = items[columns[0]]
                    start = int(items[columns[1]]) - int(one_based)
                    end = int(items[columns[2]])
                except (IndexError, ValueError):
                    raise MalformedFileError(filename, "Could not parse interval from '%s'" % line.strip(), n + 1)

                if end < start:
                    raise MalformedFileError(filename, "Interval end precedes start", n + 1)
                if end == start:
                    warn("Skipping empty blacklist interval %s:%s-%s in '%s'." % (chrom, start, end, filename),
                         FileFormatWarning)
                    continue

                intervals.setdefault(chrom, []).append((start, end))

        return cls(intervals)

    def subset(self, chroms):
        """Return a |BlackList| restricted to `chroms`, to ship to worker processes

        Parameters
        ----------
        chroms : iterable of str

        Returns
        -------
        |BlackList|
        """
        new = BlackList()
        for chrom in chroms:
            if chrom in self._intervals:
                new._intervals[chrom] = self._intervals[chrom]
        return new

    def overlaps(self, chrom, start, end):
        """Test whether `[start, end)` on `chrom` intersects any interval

        Parameters
        ----------
        chrom : str

        start, end : int
            0-based, half-open coordinates

        Returns
        -------
        bool
        """
        try:
            starts, ends = self._intervals[chrom]
        except KeyError:
            return False

        # first interval ending after `start`
        idx = numpy.searchsorted(ends, start, side="right")
        return bool(idx < len(starts) and starts[idx] < end)
