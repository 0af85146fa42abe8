#!/usr/bin/env python
"""Small statistics helpers that accumulate values one at a time

Summary
-------
|RunningStats|
    Streaming mean, variance and standard deviation (Welford's algorithm)

:func:`pearson_r`
    Pearson correlation of two equal-length vectors

:func:`sigma_trimmed_mean`
    Mean of the values lying within a number of standard deviations of the mean
"""
import math

import numpy


class RunningStats(object):
    """Accumulate the count, mean and variance of a stream of numbers
    without storing them.

    Standard deviation is the sample standard deviation (denominator `n-1`),
    and is 0 for fewer than two observations.

    Examples
    --------
    >>> stats = RunningStats()
    >>> stats.extend([2, 4, 4, 4, 5, 5, 7, 9])
    >>> stats.mean
    5.0
    """

    def __init__(self, values=None):
        self.count = 0
        self.mean = 0.0
        self._m2 = 0.0
        if values is not None:
            self.extend(values)

    def __repr__(self):
        return "<RunningStats n=%s mean=%s sd=%s>" % (self.count, self.mean, self.stdev)

    def add(self, value):
        """Add one observation

        Parameters
        ----------
        value : number
        """
        self.count += 1
        delta = value - self.mean
        self.mean += delta / self.count
        self._m2 += delta * (value - self.mean)

    def extend(self, values):
        """Add each observation in `values`"""
        for v in values:
            self.add(v)

    @property
    def variance(self):
        """Sample variance"""
        if self.count < 2:
            return 0.0
        return self._m2 / (self.count - 1)

    @property
    def stdev(self):
        """Sample standard deviation"""
        return math.sqrt(self.variance)


def pearson_r(x, y):
    """Pearson correlation coefficient of `x` and `y`

    Parameters
    ----------
    x, y : array-like
        Vectors of equal length

    Returns
    -------
    float
        Correlation coefficient, or `nan` if either vector is constant
    """
    x = numpy.asarray(x, dtype=float)
    y = numpy.asarray(y, dtype=float)
    if x.shape != y.shape:
        raise ValueError("Cannot correlate vectors of shape %s and %s" % (x.shape, y.shape))

    dx = x - x.mean()
    dy = y - y.mean()
    denom = math.sqrt((dx**2).sum() * (dy**2).sum())
    if denom == 0:
        return float("nan")

    return float((dx * dy).sum() / denom)


def sigma_trimmed_mean(values, n_sd=1.5, floor=None):
    """Mean of `values` after discarding those farther than `n_sd` sample standard
    deviations from the mean

    Parameters
    ----------
    values : sequence of numbers

    n_sd : float, optional
        Half-width of the retained band, in standard deviations (Default: 1.5)

    floor : float or None, optional
        If not `None`, the lower edge of the band is raised to at least `floor`

    Returns
    -------
    float
        Trimmed mean

    list
        Retained values
    """
    stats = RunningStats(values)
    low = stats.mean - n_sd * stats.stdev
    high = stats.mean + n_sd * stats.stdev
    if floor is not None:
        low = max(low, floor)

    kept = [X for X in values if low <= X <= high]
    if len(kept) == 0:
        return stats.mean, list(values)

    return RunningStats(kept).mean, kept
