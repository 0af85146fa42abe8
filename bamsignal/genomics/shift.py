#!/usr/bin/env python
"""Estimate the distance between the 5' ends of reads and the centre of the
fragments they were sequenced from, using strand cross-correlation.

Single-end reads from a fragment pile up on the forward strand upstream of the
fragment centre, and on the reverse strand downstream of it. Sliding the
forward profile right and the reverse profile left until they correlate best
gives the shift that moves both onto the centre.

Procedure
---------
 #. From each sampled chromosome (the largest `chrom_count`), read 5' ends
    into 10 bp bins, separately by strand.

 #. Sum reads in windows of 50 bins (500 bp). Keep windows whose depth lies
    between `zmin` and `zmax` standard deviations above the mean of
    non-empty windows.

 #. For each kept window, take both strand profiles from 50 bins before to 99
    bins after it. For each `i` in 0 to 50, shift the forward profile `i` bins
    right and the reverse profile `i` bins left and compute their Pearson
    correlation. The best `i` with `r >= min_r` gives a shift of `10*i` bp.

 #. Discard shift values further than 1.5 standard deviations from their mean
    (never below 0), and report the rounded mean of the rest.

Only alignments that are primary, not duplicates and not QC-failed are scanned.
"""
import functools
import math
import multiprocessing

import numpy
import pandas as pd

from bamsignal.genomics.alignments import AlignmentSource
from bamsignal.util.io.openers import NullWriter, argsopener
from bamsignal.util.services.exceptions import ShiftEstimationError
from bamsignal.util.services.stats import RunningStats, pearson_r, sigma_trimmed_mean

SHIFT_BIN = 10
"""Width of bins used to scan 5' ends, in bp"""

WINDOW_BINS = 50
"""Bins summed to find high-coverage windows"""

MAX_SHIFT_BINS = 50
"""Largest shift tested, in bins"""

PROFILE_BEFORE = 50
PROFILE_AFTER = 99

MODEL_HALF_WIDTH = 45
"""Half-width of the centred model profile, in bins"""

#===============================================================================
# INDEX: results
#===============================================================================


class ShiftSample(object):
    """Result for one high-coverage window

    Attributes
    ----------
    chrom : str
        Chromosome name

    start : int
        Window start, in bp

    shift : int
        Best shift, in bp

    f_profile, r_profile : :class:`numpy.ndarray`
        Unshifted strand profiles around the window

    shifted_profile : :class:`numpy.ndarray`
        Mean of the strand profiles at the best shift

    correlations : :class:`numpy.ndarray`
        Correlation at each tested shift
    """

    def __init__(self, chrom, start, shift, f_profile, r_profile, shifted_profile, correlations):
        self.chrom = chrom
        self.start = start
        self.shift = shift
        self.f_profile = f_profile
        self.r_profile = r_profile
        self.shifted_profile = shifted_profile
        self.correlations = correlations

    def __repr__(self):
        return "<ShiftSample %s:%s shift=%s>" % (self.chrom, self.start, self.shift)

    @property
    def region(self):
        return "%s:%d..%d" % (self.chrom, self.start, self.start + WINDOW_BINS * SHIFT_BIN)


class ShiftResult(object):
    """Aggregate of all sampled windows

    Attributes
    ----------
    shift : int
        Estimated shift, in bp

    samples : list of |ShiftSample|
        Windows retained after trimming

    all_shifts : list of int
        Shift values of every window, before trimming

    min_r : float
        Correlation cutoff used
    """

    def __init__(self, shift, samples, all_shifts, min_r):
        self.shift = shift
        self.samples = samples
        self.all_shifts = all_shifts
        self.min_r = min_r

    def __repr__(self):
        return "<ShiftResult shift=%s samples=%s/%s>" % (self.shift, len(self.samples), len(self.all_shifts))

    def model_table(self):
        """Average strand profiles, centred on the peak of each shifted profile

        Returns
        -------
        :class:`pandas.DataFrame`
            Columns `Start` (bp from peak), `F`, `R` and `Shift`
        """
        n = 2 * MODEL_HALF_WIDTH + 1
        f = numpy.zeros((len(self.samples), n))
        r = numpy.zeros((len(self.samples), n))
        s = numpy.zeros((len(self.samples), n))
        for row, sample in enumerate(self.samples):
            peak = int(numpy.argmax(sample.shifted_profile))
            for i in range(n):
                j = peak - MODEL_HALF_WIDTH + i
                if 0 <= j < len(sample.shifted_profile):
                    f[row, i] = sample.f_profile[j]
                    r[row, i] = sample.r_profile[j]
                    s[row, i] = sample.shifted_profile[j]

        return pd.DataFrame({
            "Start": (numpy.arange(n) - MODEL_HALF_WIDTH) * SHIFT_BIN,
            "F": f.mean(axis=0) if len(self.samples) else numpy.zeros(n),
            "R": r.mean(axis=0) if len(self.samples) else numpy.zeros(n),
            "Shift": s.mean(axis=0) if len(self.samples) else numpy.zeros(n),
        }, columns=["Start", "F", "R", "Shift"])

    def correlation_table(self):
        """Mean correlation at each tested shift

        Returns
        -------
        :class:`pandas.DataFrame`
            Columns `Shift` (bp) and `R`
        """
        shifts = numpy.arange(MAX_SHIFT_BINS + 1) * SHIFT_BIN
        if len(self.samples) == 0:
            r = numpy.zeros(len(shifts))
        else:
            r = numpy.nanmean(numpy.vstack([X.correlations for X in self.samples]), axis=0)
        return pd.DataFrame({"Shift": shifts, "R": r}, columns=["Shift", "R"])

    def write_model(self, outbase, args=None):
        """Write model and correlation tables as `<outbase>_model.txt` and
        `<outbase>_correlations.txt`

        Parameters
        ----------
        outbase : str
            Output filename base

        args : :py:class:`argparse.Namespace` or dict, optional
            Run arguments, written as a file header

        Returns
        -------
        list of str
            Filenames written
        """
        args = {} if args is None else args
        ltmp = []
        for suffix, table in (("model", self.model_table()), ("correlations", self.correlation_table())):
            fn = "%s_%s.txt" % (outbase, suffix)
            with argsopener(fn, args, "w") as fout:
                fout.write("## final shift: %s bp\n" % self.shift)
                fout.write("## minimum r: %s\n" % self.min_r)
                fout.write("## regions sampled: %s\n" % len(self.samples))
                table.to_csv(fout, sep="\t", header=True, index=False, na_rep="nan", float_format="%.8f")
            ltmp.append(fn)

        return ltmp


#===============================================================================
# INDEX: numeric core
#===============================================================================


def high_coverage_windows(f_counts, r_counts, zmin=3, zmax=10):
    """Find windows of :data:`WINDOW_BINS` bins with unusually high read depth

    Parameters
    ----------
    f_counts, r_counts : :class:`numpy.ndarray`
        Per-bin 5' end counts on each strand

    zmin, zmax : float, optional
        Depth band, in standard deviations above the mean of non-empty windows

    Returns
    -------
    list of int
        First bin of each selected window
    """
    n_bins = min(len(f_counts), len(r_counts))
    depths = {}
    for start in range(0, n_bins, WINDOW_BINS):
        depth = f_counts[start:start + WINDOW_BINS].sum() + r_counts[start:start + WINDOW_BINS].sum()
        if depth > 0:
            depths[start] = depth

    if len(depths) == 0:
        return []

    stats = RunningStats(depths.values())
    low = stats.mean + zmin * stats.stdev
    high = stats.mean + zmax * stats.stdev
    return sorted([K for K, V in depths.items() if low < V < high])


def window_correlations(f_profile, r_profile, max_shift=MAX_SHIFT_BINS):
    """Correlate strand profiles at each shift from 0 to `max_shift` bins

    The forward profile moves right and the reverse profile moves left by
    the same number of bins; vacated positions are filled with 0.

    Returns
    -------
    :class:`numpy.ndarray`
        Correlation coefficient at each shift (`nan` if undefined)
    """
    n = len(f_profile)
    r_values = numpy.full(max_shift + 1, numpy.nan)
    for i in range(max_shift + 1):
        f = numpy.zeros(n)
        r = numpy.zeros(n)
        f[i:] = f_profile[:n - i]
        r[:n - i] = r_profile[i:]
        r_values[i] = pearson_r(f, r)

    return r_values


def sample_chromosome(chrom, f_counts, r_counts, min_r=0.5, zmin=3, zmax=10):
    """Find a shift for each high-coverage window on one chromosome

    Parameters
    ----------
    chrom : str
        Chromosome name

    f_counts, r_counts : :class:`numpy.ndarray`
        Per-bin 5' end counts on each strand, in :data:`SHIFT_BIN` bins

    min_r : float, optional
        Minimum correlation for a shift to be accepted (Default: 0.5)

    zmin, zmax : float, optional
        Depth band for window selection

    Returns
    -------
    list of |ShiftSample|
    """
    f_counts = numpy.asarray(f_counts, dtype=float)
    r_counts = numpy.asarray(r_counts, dtype=float)
    n_bins = min(len(f_counts), len(r_counts))

    samples = []
    for pos in high_coverage_windows(f_counts, r_counts, zmin=zmin, zmax=zmax):
        start = max(pos - PROFILE_BEFORE, 0)
        stop = min(pos + PROFILE_AFTER + 1, n_bins)
        f_profile = f_counts[start:stop]
        r_profile = r_counts[start:stop]
        correlations = window_correlations(f_profile, r_profile)

        best_r = 0
        best_i = 0
        for i, r in enumerate(correlations):
            if not math.isnan(r) and r >= min_r and r > best_r:
                best_r = r
                best_i = i

        if best_r > min_r:
            n = len(f_profile)
            f = numpy.zeros(n)
            r = numpy.zeros(n)
            f[best_i:] = f_profile[:n - best_i]
            r[:n - best_i] = r_profile[best_i:]
            samples.append(
                ShiftSample(
                    chrom, pos * SHIFT_BIN, best_i * SHIFT_BIN, f_profile.copy(), r_profile.copy(), (f + r) / 2.0,
                    correlations
                )
            )

    return samples


def scan_chromosome(source, chrom, length, min_mapq=0):
    """Count 5' ends of primary, non-duplicate alignments in :data:`SHIFT_BIN` bins

    Parameters
    ----------
    source : |AlignmentSource|

    chrom : str
        Chromosome name

    length : int
        Chromosome length

    min_mapq : int, optional
        Minimum mapping quality (Default: 0)

    Returns
    -------
    :class:`numpy.ndarray`
        Forward strand counts

    :class:`numpy.ndarray`
        Reverse strand counts
    """
    n_bins = length // SHIFT_BIN + 1
    f_counts = numpy.zeros(n_bins, dtype=numpy.int64)
    r_counts = numpy.zeros(n_bins, dtype=numpy.int64)
    for read in source.fetch(chrom):
        if read.is_secondary or read.is_qcfail or read.is_duplicate or read.is_supplementary:
            continue
        if read.mapping_quality < min_mapq:
            continue
        if read.is_reverse:
            r_counts[min((read.end - 1) // SHIFT_BIN, n_bins - 1)] += 1
        else:
            f_counts[read.start // SHIFT_BIN] += 1

    return f_counts, r_counts


def shift_worker(chrom_length, filename=None, min_mapq=0, min_r=0.5, zmin=3, zmax=10):
    """Scan and sample one chromosome in its own process

    Parameters
    ----------
    chrom_length : tuple
        `(chromosome name, length)`

    filename : str
        Path to BAM file, opened anew by each worker

    Returns
    -------
    list of |ShiftSample|
    """
    chrom, length = chrom_length
    with AlignmentSource(filename) as source:
        f_counts, r_counts = scan_chromosome(source, chrom, length, min_mapq=min_mapq)

    return sample_chromosome(chrom, f_counts, r_counts, min_r=min_r, zmin=zmin, zmax=zmax)


#===============================================================================
# INDEX: estimator
#===============================================================================


class ShiftEstimator(object):
    """Estimate the single-end read shift of a sample

    Parameters
    ----------
    chrom_count : int, optional
        Number of chromosomes to sample, largest first (Default: 4)

    min_r : float, optional
        Minimum correlation for a window to count (Default: 0.5)

    zmin, zmax : float, optional
        Depth band for window selection, in standard deviations (Defaults: 3, 10)

    min_mapq : int, optional
        Minimum mapping quality of scanned alignments (Default: 0)

    processes : int, optional
        Number of chromosomes scanned in parallel (Default: 1)

    printer : file-like, optional
        A stream to which progress can be written (Default: |NullWriter|)
    """

    def __init__(self, chrom_count=4, min_r=0.5, zmin=3, zmax=10, min_mapq=0, processes=1, printer=None):
        if not 0 < min_r < 1:
            raise ValueError("Minimum correlation must be between 0 and 1, found %s." % min_r)
        if zmax <= zmin:
            raise ValueError("zmax (%s) must exceed zmin (%s)." % (zmax, zmin))

        self.chrom_count = chrom_count
        self.min_r = min_r
        self.zmin = zmin
        self.zmax = zmax
        self.min_mapq = min_mapq
        self.processes = processes
        self.printer = NullWriter() if printer is None else printer

    def __repr__(self):
        return "<ShiftEstimator chroms=%s min_r=%s z=%s..%s>" % (self.chrom_count, self.min_r, self.zmin, self.zmax)

    def choose_chromosomes(self, chromosomes):
        """Return the `chrom_count` largest chromosomes

        Parameters
        ----------
        chromosomes : list of |Chromosome|

        Returns
        -------
        list of |Chromosome|
        """
        return sorted(chromosomes, key=lambda x: x.length, reverse=True)[:self.chrom_count]

    def aggregate(self, samples):
        """Combine per-window shifts into one estimate

        Parameters
        ----------
        samples : list of |ShiftSample|

        Returns
        -------
        |ShiftResult|

        Raises
        ------
        ShiftEstimationError
            If no window produced a shift
        """
        if len(samples) == 0:
            raise ShiftEstimationError(
                "No region yielded a strand correlation above %s. Give a shift or extension length explicitly." %
                self.min_r
            )

        shifts = [X.shift for X in samples]
        raw = RunningStats(shifts)
        self.printer.write("Collected mean shift is %.0f +/- %.0f bp from %s regions." % (raw.mean, raw.stdev, len(shifts)))

        mean, kept = sigma_trimmed_mean(shifts, n_sd=1.5, floor=0)
        kept_samples = [X for X in samples if X.shift in set(kept)]
        shift = int(math.floor(mean + 0.5))
        self.printer.write("Trimmed mean shift is %s bp from %s regions." % (shift, len(kept_samples)))
        return ShiftResult(shift, kept_samples, shifts, self.min_r)

    def estimate(self, filename, chromosomes=None):
        """Estimate the shift of one BAM file

        Parameters
        ----------
        filename : str
            Path to sorted, indexed BAM file

        chromosomes : list of |Chromosome| or None, optional
            Candidate chromosomes. If `None`, all chromosomes in the file header

        Returns
        -------
        |ShiftResult|
        """
        if chromosomes is None:
            with AlignmentSource(filename) as source:
                chromosomes = source.chromosomes()

        chosen = self.choose_chromosomes(chromosomes)
        self.printer.write("Scanning %s for strand correlation ..." % ", ".join([X.name for X in chosen]))
        worker = functools.partial(
            shift_worker, filename=filename, min_mapq=self.min_mapq, min_r=self.min_r, zmin=self.zmin, zmax=self.zmax
        )
        items = [(X.name, X.length) for X in chosen]
        if self.processes > 1 and len(items) > 1:
            pool = multiprocessing.Pool(processes=min(self.processes, len(items)))
            try:
                results = pool.map(worker, items, 1)
            finally:
                pool.close()
                pool.join()
        else:
            results = [worker(X) for X in items]

        samples = []
        for chrom_samples in results:
            samples.extend(chrom_samples)

        return self.aggregate(samples)
