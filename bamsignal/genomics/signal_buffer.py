#!/usr/bin/env python
"""Memory-bounded accumulation of per-bin signal for one chromosome and strand.

A |SignalBuffer| keeps recent bins in a growable :class:`numpy.ndarray`
(the *live* region) and packs older bins into bytes as the live region grows.
Because alignments arrive sorted by position, bins behind the live region will
never be written again, so only the live region needs to be mutable. Peak
memory therefore depends on the flush threshold, not on chromosome length.
"""
import numpy

from bamsignal.util.io.binary import BinPacker, INT_WIDTH
from bamsignal.util.services.exceptions import OutOfOrderWriteError

DEFAULT_FLUSH_THRESHOLD = 1000000
"""Number of live bins above which the oldest half is packed"""


class SignalBuffer(object):
    """Offset-tracked accumulator of per-bin values

    Parameters
    ----------
    width : str, optional
        Element width used when packing (see :mod:`bamsignal.util.io.binary`)
        (Default: `'uint32'`)

    threshold : int, optional
        Live length above which :meth:`flush_if_large` packs the oldest half
        (Default: :data:`DEFAULT_FLUSH_THRESHOLD`)

    Attributes
    ----------
    live_offset : int
        Bin index of the first live value. Only increases.

    flushed_bytes : bytearray
        Packed values of all bins before `live_offset`

    Examples
    --------
    >>> buf = SignalBuffer()
    >>> buf.add(3, 1)
    >>> buf.add_range(2, 5, 1)
    >>> list(BinPacker("uint32").decode(buf.finalize(6)))
    [0, 0, 1, 2, 1, 0]
    """

    def __init__(self, width=INT_WIDTH, threshold=DEFAULT_FLUSH_THRESHOLD):
        if threshold < 2:
            raise ValueError("Flush threshold must be at least 2 bins.")

        self.packer = BinPacker(width)
        self.threshold = threshold
        self.live_offset = 0
        self.flushed_bytes = bytearray()
        self._dtype = numpy.float64 if self.packer.is_float else numpy.int64
        self._values = numpy.zeros(1024, dtype=self._dtype)
        self._length = 0
        self._finalized = False

    def __repr__(self):
        return "<SignalBuffer offset=%s live=%s flushed=%s width=%s>" % (
            self.live_offset, self._length, self.flushed_bins, self.packer.width
        )

    @property
    def live_length(self):
        """Number of bins in the live region"""
        return self._length

    @property
    def flushed_bins(self):
        """Number of bins already packed"""
        return len(self.flushed_bytes) // self.packer.itemsize

    @property
    def live_values(self):
        """Copy of the live region"""
        return self._values[:self._length].copy()

    def _reserve(self, stop_bin):
        """Make sure the live region extends to bin `stop_bin - 1`, and return its local index"""
        if self._finalized:
            raise ValueError("SignalBuffer already finalized.")

        end = stop_bin - self.live_offset
        if end > len(self._values):
            capacity = max(end, 2 * len(self._values))
            grown = numpy.zeros(capacity, dtype=self._dtype)
            grown[:self._length] = self._values[:self._length]
            self._values = grown

        self._length = max(self._length, end)

    def _check(self, bin_index):
        if bin_index < self.live_offset:
            raise OutOfOrderWriteError(bin_index, self.live_offset)

    def _coerce(self, weight):
        if self.packer.is_float:
            return numpy.asarray(weight, dtype=self._dtype)

        weight = numpy.asarray(weight)
        if weight.dtype.kind == "f":
            if numpy.any(weight != numpy.floor(weight)):
                raise ValueError("Cannot add fractional values to an integer %s buffer." % self.packer.width)
            weight = weight.astype(self._dtype)
        return weight

    def add(self, bin_index, weight):
        """Add `weight` to bin `bin_index`

        Raises
        ------
        OutOfOrderWriteError
            If `bin_index` has already been flushed
        """
        self._check(bin_index)
        self._reserve(bin_index + 1)
        self._values[bin_index - self.live_offset] += self._coerce(weight)

    def add_range(self, start, end, weight):
        """Add `weight` to each bin in `[start, end)`

        Raises
        ------
        OutOfOrderWriteError
            If `start` has already been flushed
        """
        if end <= start:
            return
        self._check(start)
        self._reserve(end)
        self._values[start - self.live_offset:end - self.live_offset] += self._coerce(weight)

    def add_values(self, start, values):
        """Add `values[i]` to bin `start + i` for each `i`

        Raises
        ------
        OutOfOrderWriteError
            If `start` has already been flushed
        """
        values = self._coerce(values)
        if len(values) == 0:
            return
        self._check(start)
        self._reserve(start + len(values))
        self._values[start - self.live_offset:start - self.live_offset + len(values)] += values

    def _flush(self, n):
        self.flushed_bytes.extend(self.packer.encode(self._values[:n]))
        remaining = self._length - n
        self._values[:remaining] = self._values[n:self._length]
        self._values[remaining:self._length] = 0
        self._length = remaining
        self.live_offset += n

    def flush_if_large(self, keep_from=None):
        """Pack the oldest half of the live region if it exceeds the threshold

        Parameters
        ----------
        keep_from : int or None, optional
            First bin that may still receive values. Bins from here on stay
            live even if that leaves more than half the region unflushed.

        Returns
        -------
        bool
            `True` if values were flushed
        """
        if self._length <= self.threshold:
            return False

        n = self._length // 2
        if keep_from is not None:
            n = min(n, keep_from - self.live_offset)
        if n <= 0:
            return False

        self._flush(n)
        return True

    def finalize(self, n_bins):
        """Pad or clip the live region to end at bin `n_bins`, pack it, and return
        all packed values

        Contributions past `n_bins` (e.g. from reads extended past the end of the
        chromosome) are discarded.

        Parameters
        ----------
        n_bins : int
            Total number of bins on the chromosome

        Returns
        -------
        bytes
            Exactly `n_bins` packed values
        """
        if n_bins < self.live_offset:
            raise ValueError("Cannot finalize at %s bins: %s bins already flushed." % (n_bins, self.live_offset))

        self._reserve(n_bins)
        self._length = n_bins - self.live_offset
        self._flush(self._length)
        self._finalized = True
        return bytes(self.flushed_bytes)
