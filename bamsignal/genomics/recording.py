#!/usr/bin/env python
"""Rules that convert read alignments into per-bin signal contributions.

Each :class:`Mode` has one |RecordingStrategy| subclass. Every strategy takes
the same input, an |AlignmentView| (single-end) or a |ReadPair| (paired-end),
and returns the bins it contributes to, the output strand and the weight:

    ========================   =================================================================
    **Mode**                   **Contribution**
    ------------------------   -----------------------------------------------------------------
    ``start``                  the 5' base of the read, moved `shift_bp` toward its 3' end
    ``mid``                    the midpoint `floor((start+end-1)/2)` of the read or fragment
    ``span``                   every bin covered by the read or fragment
    ``extend``                 `extend_bp` from the 5' end of the read, toward its 3' end
    ``cspan``                  a window `2*floor(extend_bp/2)` wide centered on the midpoint
    ``coverage``               raw per-base depth from the alignment source (no filtering)
    ``smartpe``                the union of both mates' aligned blocks, each bin once
    ``ends``                   the two outer ends of the fragment
    ========================   =================================================================

All positions are converted to bins as `floor(position / bin_size)`.

Run settings are held by an immutable |RecordingConfig|, which rejects
invalid or mutually exclusive combinations when it is created, so that
strategies never need to check them.

Alignments are screened before recording by an |AlignmentFilter|, which
reports why an alignment was rejected so that rejections can be tallied.


Examples
--------
Record the 5' end of a reverse-strand read::

    >>> config = RecordingConfig(Mode.START, strand_split=True)
    >>> record(AlignmentView("chrI", 100, 150, is_reverse=True), config)
    [(149, 'r', 1.0)]
"""
import enum
import math
import re
from collections import namedtuple

import numpy

from bamsignal.genomics.alignments import ReadPair
from bamsignal.util.io.binary import INT_WIDTH, FLOAT_WIDTH
from bamsignal.util.services.exceptions import ConfigurationError

#===============================================================================
# INDEX: modes, formats, configuration
#===============================================================================


class Mode(enum.Enum):
    """Position-recording modes. Exactly one is used per run."""
    START = "start"
    MID = "mid"
    SPAN = "span"
    EXTEND = "extend"
    CENTER_SPAN = "cspan"
    COVERAGE = "coverage"
    SMART_PAIRED = "smartpe"
    PAIRED_ENDPOINTS = "ends"


PAIRED_ONLY_MODES = (Mode.SMART_PAIRED, Mode.PAIRED_ENDPOINTS)
"""Modes that only make sense for paired-end fragments"""

SINGLE_ONLY_MODES = (Mode.START, Mode.EXTEND)
"""Modes that only make sense for single-end alignments"""

BEDGRAPH = "bedgraph"
FIXED_STEP = "fixedStep"
VARIABLE_STEP = "variableStep"
WIG_FORMATS = (BEDGRAPH, FIXED_STEP, VARIABLE_STEP)

DEFAULT_FORMATS = {
    Mode.START: VARIABLE_STEP,
    Mode.MID: VARIABLE_STEP,
    Mode.SPAN: BEDGRAPH,
    Mode.EXTEND: BEDGRAPH,
    Mode.CENTER_SPAN: BEDGRAPH,
    Mode.COVERAGE: FIXED_STEP,
    Mode.SMART_PAIRED: BEDGRAPH,
    Mode.PAIRED_ENDPOINTS: VARIABLE_STEP,
}
"""Output format used for each mode when none is requested"""

DEFAULT_DECIMALS = 4
"""Decimal places written when values may be fractional"""


class RecordingConfig(object):
    """Immutable settings for one signal-generation run

    Parameters
    ----------
    mode : |Mode|
        Position-recording mode

    paired : bool, optional
        Record properly paired fragments instead of single reads (Default: `False`)

    strand_split : bool, optional
        Keep forward and reverse strand signal separate (Default: `False`)

    flip : bool, optional
        Swap the names of forward and reverse strand output files (Default: `False`)

    shift_bp : int, optional
        Distance to move single-end positions toward their 3' end (Default: 0)

    estimate_shift : bool, optional
        Estimate `shift_bp` from the data before recording (Default: `False`)

    extend_bp : int, optional
        Extension length for ``extend`` and ``cspan`` modes. If 0 for a
        single-end run in those modes, it is estimated as twice the shift.

    bin_size : int, optional
        Width of each bin, in bp (Default: 1)

    splice : bool, optional
        Record each aligned block of a spliced alignment separately (Default: `False`)

    max_intron_bp : int, optional
        Spliced alignments with a longer gap are dropped. 0 means unlimited.

    min_insert, max_insert : int, optional
        Permitted paired-end fragment lengths (Defaults: 30, 600)

    min_mapq : int, optional
        Minimum mapping quality (Default: 0)

    keep_secondary, keep_duplicate, keep_supplementary : bool, optional
        Whether flagged alignments are recorded (Defaults: `True`)

    fraction : bool, optional
        Weight each alignment by `1/N`, with `N` its number of reported
        alignments (`NH` tag) (Default: `False`)

    splice_fraction : bool, optional
        Divide the weight of a spliced alignment between its blocks (Default: `False`)

    rpm : bool, optional
        Normalize to reads per million (Default: `False`)

    scale : list of float or None, optional
        Scaling factor applied to all samples, or one per sample

    mean : bool, optional
        Average samples instead of summing them (Default: `False`)

    chrom_scale_pattern : str or None, optional
        Regular expression selecting chromosomes to rescale

    chrom_scale_factor : float, optional
        Factor applied to chromosomes matching `chrom_scale_pattern`

    wig_format : str or None, optional
        One of :data:`WIG_FORMATS`. If `None`, chosen from `mode`

    decimals : int or None, optional
        Decimal places for output values. If `None`, integers are written
        unless values may be fractional, in which case :data:`DEFAULT_DECIMALS`
        places are written

    suppress_zero : bool, optional
        Omit zero-valued bedGraph intervals (Default: `False`)

    Raises
    ------
    ConfigurationError
        If settings are invalid or mutually exclusive
    """

    _fields = (
        "mode", "paired", "strand_split", "flip", "shift_bp", "estimate_shift", "extend_bp", "bin_size", "splice",
        "max_intron_bp", "min_insert", "max_insert", "min_mapq", "keep_secondary", "keep_duplicate",
        "keep_supplementary", "fraction", "splice_fraction", "rpm", "scale", "mean", "chrom_scale_pattern",
        "chrom_scale_factor", "wig_format", "decimals", "suppress_zero"
    )

    def __init__(
        self,
        mode,
        paired=False,
        strand_split=False,
        flip=False,
        shift_bp=0,
        estimate_shift=False,
        extend_bp=0,
        bin_size=1,
        splice=False,
        max_intron_bp=0,
        min_insert=30,
        max_insert=600,
        min_mapq=0,
        keep_secondary=True,
        keep_duplicate=True,
        keep_supplementary=True,
        fraction=False,
        splice_fraction=False,
        rpm=False,
        scale=None,
        mean=False,
        chrom_scale_pattern=None,
        chrom_scale_factor=1.0,
        wig_format=None,
        decimals=None,
        suppress_zero=False
    ):
        if not isinstance(mode, Mode):
            try:
                mode = Mode(mode)
            except ValueError:
                raise ConfigurationError("Unknown recording mode '%s'." % mode)

        d = self.__dict__
        d["mode"] = mode
        d["paired"] = bool(paired)
        d["strand_split"] = bool(strand_split)
        d["flip"] = bool(flip)
        d["shift_bp"] = int(shift_bp)
        d["estimate_shift"] = bool(estimate_shift)
        d["extend_bp"] = int(extend_bp)
        d["bin_size"] = int(bin_size)
        d["splice"] = bool(splice)
        d["max_intron_bp"] = int(max_intron_bp)
        d["min_insert"] = int(min_insert)
        d["max_insert"] = int(max_insert)
        d["min_mapq"] = int(min_mapq)
        d["keep_secondary"] = bool(keep_secondary)
        d["keep_duplicate"] = bool(keep_duplicate)
        d["keep_supplementary"] = bool(keep_supplementary)
        d["fraction"] = bool(fraction)
        d["splice_fraction"] = bool(splice_fraction)
        d["rpm"] = bool(rpm)
        d["scale"] = None if scale is None else tuple([float(X) for X in scale])
        d["mean"] = bool(mean)
        d["chrom_scale_pattern"] = chrom_scale_pattern
        d["chrom_scale_factor"] = float(chrom_scale_factor)
        d["suppress_zero"] = bool(suppress_zero)

        self._validate()

        if wig_format is None:
            wig_format = DEFAULT_FORMATS[mode]
            if wig_format == VARIABLE_STEP and self.bin_size > 1:
                wig_format = FIXED_STEP
        elif wig_format not in WIG_FORMATS:
            raise ConfigurationError("Unknown output format '%s'." % wig_format)
        elif wig_format == VARIABLE_STEP and self.bin_size > 1:
            raise ConfigurationError("variableStep output requires a bin size of 1.")
        d["wig_format"] = wig_format

        if decimals is None and self.uses_float:
            decimals = DEFAULT_DECIMALS
        if decimals is not None and decimals < 0:
            raise ConfigurationError("Decimal places must be >= 0.")
        d["decimals"] = decimals

        if chrom_scale_pattern is not None:
            try:
                d["_chrom_regex"] = re.compile(chrom_scale_pattern)
            except re.error as e:
                raise ConfigurationError("Invalid chromosome pattern '%s': %s" % (chrom_scale_pattern, e))
        else:
            d["_chrom_regex"] = None

    def _validate(self):
        mode = self.mode
        if self.bin_size < 1:
            raise ConfigurationError("Bin size must be >= 1, found %s." % self.bin_size)

        for name in ("shift_bp", "extend_bp", "max_intron_bp", "min_insert", "max_insert", "min_mapq"):
            if getattr(self, name) < 0:
                raise ConfigurationError("%s must be >= 0, found %s." % (name, getattr(self, name)))

        if self.min_insert > self.max_insert:
            raise ConfigurationError(
                "Minimum insert size (%s) exceeds maximum (%s)." % (self.min_insert, self.max_insert)
            )

        shifting = self.shift_bp > 0 or self.estimate_shift
        if shifting and self.splice:
            raise ConfigurationError("Shifting and splitting spliced alignments are mutually exclusive.")

        if shifting and self.paired:
            raise ConfigurationError("Shifting is not used with paired-end fragments, which need no shift.")

        if mode in PAIRED_ONLY_MODES and not self.paired:
            raise ConfigurationError("Mode '%s' requires paired-end alignments." % mode.value)

        if self.paired and mode in SINGLE_ONLY_MODES:
            raise ConfigurationError("Mode '%s' cannot be used with paired-end fragments." % mode.value)

        if self.paired and self.splice:
            raise ConfigurationError(
                "Splitting spliced alignments is not supported for paired-end fragments. Use 'smartpe'."
            )

        if self.paired and mode == Mode.CENTER_SPAN and self.extend_bp == 0:
            raise ConfigurationError("Mode 'cspan' with paired-end fragments requires an extension length.")

        if mode == Mode.COVERAGE:
            if self.strand_split:
                raise ConfigurationError("Coverage cannot be split by strand.")
            if self.paired:
                raise ConfigurationError("Coverage counts bases, not fragments. Use 'smartpe' for fragment coverage.")
            if shifting:
                raise ConfigurationError("Coverage cannot be shifted.")
            if self.splice or self.fraction or self.splice_fraction:
                raise ConfigurationError("Coverage does not use per-alignment options.")

        if self.splice_fraction and not self.splice:
            raise ConfigurationError("Splice-fraction weighting requires splitting spliced alignments.")

        if self.scale is not None and len(self.scale) == 0:
            raise ConfigurationError("At least one scale factor is required if scaling.")

    def __setattr__(self, key, value):
        raise AttributeError("RecordingConfig is immutable. Use `replace()` to derive a new one.")

    def __repr__(self):
        return "<RecordingConfig %s>" % ", ".join(["%s=%s" % (K, getattr(self, K)) for K in self._fields])

    def __eq__(self, other):
        return isinstance(other, RecordingConfig) and all(
            [getattr(self, K) == getattr(other, K) for K in self._fields]
        )

    def __getstate__(self):
        return {K: getattr(self, K) for K in self._fields}

    def __setstate__(self, state):
        self.__dict__.update(RecordingConfig(**state).__dict__)

    def replace(self, **kwargs):
        """Return a new |RecordingConfig| with some settings changed

        Parameters
        ----------
        kwargs : keyword arguments
            Settings to change

        Returns
        -------
        |RecordingConfig|
        """
        state = self.__getstate__()
        state.update(kwargs)
        return RecordingConfig(**state)

    @property
    def needs_shift_estimate(self):
        """`True` if a shift value must be estimated from the data before recording"""
        if self.estimate_shift:
            return True
        return not self.paired and self.mode in (Mode.EXTEND, Mode.CENTER_SPAN) and self.extend_bp == 0

    def with_estimated_shift(self, shift):
        """Return a copy of this configuration parameterized by an estimated shift

        The shift is applied to single-end positions if shifting was requested,
        and twice the shift becomes the extension length of ``extend`` and
        ``cspan`` modes if none was given.

        Parameters
        ----------
        shift : int
            Estimated shift, in bp

        Returns
        -------
        |RecordingConfig|
        """
        changes = {"estimate_shift": False}
        if self.estimate_shift:
            changes["shift_bp"] = shift
        if self.mode in (Mode.EXTEND, Mode.CENTER_SPAN) and self.extend_bp == 0:
            changes["extend_bp"] = 2 * shift
        return self.replace(**changes)

    @property
    def strands(self):
        """Strand keys of the signal produced: `('f', 'r')` if split, else `('f',)`"""
        return ("f", "r") if self.strand_split else ("f", )

    @property
    def uses_scaling(self):
        """`True` if any normalization or scaling is applied after recording"""
        return self.rpm or self.mean or self.scale is not None or self.chrom_scale_pattern is not None

    @property
    def uses_float(self):
        """`True` if recorded or output values may be fractional"""
        return self.fraction or self.splice_fraction or self.uses_scaling

    @property
    def raw_width(self):
        """Element width used to pack recorded, unnormalized values"""
        return FLOAT_WIDTH if (self.fraction or self.splice_fraction) else INT_WIDTH

    def chromosome_factor(self, chrom):
        """Scaling factor for `chrom`: `chrom_scale_factor` if it matches
        `chrom_scale_pattern`, otherwise 1"""
        if self._chrom_regex is not None and self._chrom_regex.search(chrom):
            return self.chrom_scale_factor
        return 1.0

    def half_extend(self):
        return self.extend_bp // 2


#===============================================================================
# INDEX: filtering
#===============================================================================


class AlignmentFilter(object):
    """Decide whether alignments and fragments are recorded

    Each test returns `None` if the item passes, or a short reason string
    that can be used to tally rejections.

    Parameters
    ----------
    config : |RecordingConfig|
        Run settings

    blacklist : |BlackList| or None, optional
        Regions to exclude
    """

    def __init__(self, config, blacklist=None):
        self.config = config
        self.blacklist = blacklist

    def check(self, alignment):
        """Screen one alignment

        Parameters
        ----------
        alignment : |AlignmentView|

        Returns
        -------
        str or None
            Reason for rejection, or `None` if `alignment` passes
        """
        config = self.config
        if alignment.is_qcfail:
            return "qcfail"
        if alignment.mapping_quality < config.min_mapq:
            return "mapq"
        if alignment.is_secondary and not config.keep_secondary:
            return "secondary"
        if alignment.is_duplicate and not config.keep_duplicate:
            return "duplicate"
        if alignment.is_supplementary and not config.keep_supplementary:
            return "supplementary"

        if config.paired:
            if not alignment.is_paired:
                return "unpaired"
            if not alignment.is_proper_pair or alignment.mate_chrom != alignment.chrom:
                return "improper"
            if alignment.is_reverse == alignment.mate_is_reverse:
                return "orientation"
            if not config.min_insert <= abs(alignment.insert_size) <= config.max_insert:
                return "insert_size"
        elif self.blacklist is not None and self.blacklist.overlaps(alignment.chrom, alignment.start, alignment.end):
            return "blacklist"

        return None

    def check_pair(self, pair):
        """Screen an assembled fragment

        Parameters
        ----------
        pair : |ReadPair|

        Returns
        -------
        str or None
            Reason for rejection, or `None` if `pair` passes
        """
        if pair.forward.is_reverse or not pair.reverse.is_reverse:
            return "orientation"
        if pair.forward.start > pair.reverse.start:
            return "orientation"
        if self.blacklist is not None and self.blacklist.overlaps(pair.chrom, pair.start, pair.end):
            return "blacklist"
        return None


#===============================================================================
# INDEX: interval bookkeeping
#===============================================================================


class IntervalSet(object):
    """Set of half-open intervals that coalesces overlapping or adjacent members

    Examples
    --------
    >>> iset = IntervalSet([(10, 20), (15, 30), (40, 45)])
    >>> list(iset)
    [(10, 30), (40, 45)]
    >>> iset.length
    25
    """

    def __init__(self, intervals=None):
        self._intervals = []
        for start, end in (intervals or []):
            self.add(start, end)

    def __iter__(self):
        return iter(self._intervals)

    def __len__(self):
        return len(self._intervals)

    def __repr__(self):
        return "<IntervalSet %s>" % ", ".join(["[%s,%s)" % X for X in self._intervals])

    @property
    def length(self):
        """Number of positions covered"""
        return sum([X[1] - X[0] for X in self._intervals])

    def add(self, start, end):
        """Add `[start, end)`, merging it with any members it touches"""
        if end <= start:
            return

        kept = []
        for s, e in self._intervals:
            if e < start or s > end:
                kept.append((s, e))
            else:
                start = min(start, s)
                end = max(end, e)

        kept.append((start, end))
        kept.sort()
        self._intervals = kept


#===============================================================================
# INDEX: recording strategies
#===============================================================================

Contribution = namedtuple("Contribution", ["start", "end", "strand", "weight"])
"""A run of bins `[start, end)` on one output strand that each receive `weight`"""


class RecordingStrategy(object):
    """Base class for position-recording rules

    Subclasses define where a single alignment contributes via
    :meth:`place`, and where a paired fragment contributes via
    :meth:`place_pair`, as lists of half-open bp intervals. This class handles
    weighting, strand assignment, splice re-dispatch and conversion to bins.

    Parameters
    ----------
    config : |RecordingConfig|
        Run settings
    """

    mode = None

    def __init__(self, config):
        if config.mode != self.mode:
            raise ConfigurationError("%s cannot record mode '%s'." % (self.__class__.__name__, config.mode.value))
        self.config = config
        self.bin_size = config.bin_size

    def __repr__(self):
        return "<%s bin_size=%s>" % (self.__class__.__name__, self.bin_size)

    def strand_key(self, is_reverse):
        """Output strand key for an item on the given strand"""
        if self.config.strand_split and is_reverse:
            return "r"
        return "f"

    def count_weight(self, item):
        """Weight used to tally `item` for RPM normalization

        Parameters
        ----------
        item : |AlignmentView| or |ReadPair|

        Returns
        -------
        float
        """
        if not self.config.fraction:
            return 1.0

        if isinstance(item, ReadPair):
            counts = [X.multimap_count or 1 for X in item.mates]
            return 1.0 / max(counts)

        return 1.0 / (item.multimap_count or 1)

    def bins(self, start, end):
        """Convert bp interval `[start, end)` to bin interval, clipping at 0

        Returns
        -------
        tuple or None
            `(first_bin, last_bin + 1)`, or `None` if nothing remains
        """
        start = max(start, 0)
        if end <= start:
            return None
        return (start // self.bin_size, (end - 1) // self.bin_size + 1)

    def intervals(self, item):
        """Return the bin runs contributed by `item`

        Parameters
        ----------
        item : |AlignmentView| or |ReadPair|

        Returns
        -------
        list of |Contribution| or None
            Contributions, or `None` if `item` is dropped because one of its
            gaps exceeds `max_intron_bp`
        """
        if isinstance(item, ReadPair):
            return self._pair_intervals(item)
        return self._single_intervals(item)

    def record(self, item):
        """Return one `(bin_index, strand, weight)` tuple per contributed bin

        Parameters
        ----------
        item : |AlignmentView| or |ReadPair|

        Returns
        -------
        list of tuple
        """
        ltmp = []
        for c in self.intervals(item) or []:
            ltmp.extend([(X, c.strand, c.weight) for X in range(c.start, c.end)])
        return ltmp

    def _too_long(self, alignment):
        limit = self.config.max_intron_bp
        return limit > 0 and alignment.max_gap > limit

    def _single_intervals(self, alignment):
        if self.config.paired:
            raise TypeError("Paired-end runs record ReadPairs, not single alignments.")

        weight = self.count_weight(alignment)
        if self.config.splice and alignment.is_spliced:
            if self._too_long(alignment):
                return None
            blocks = alignment.segments
            if self.config.splice_fraction:
                weight /= len(blocks)
        else:
            blocks = [(alignment.start, alignment.end)]

        strand = self.strand_key(alignment.is_reverse)
        ltmp = []
        for start, end in blocks:
            for bp_start, bp_end in self.place(start, end, alignment.is_reverse):
                b = self.bins(bp_start, bp_end)
                if b is not None:
                    ltmp.append(Contribution(b[0], b[1], strand, weight))

        return ltmp

    def _pair_intervals(self, pair):
        if not self.config.paired:
            raise TypeError("Single-end runs record AlignmentViews, not ReadPairs.")

        weight = self.count_weight(pair)
        strand = self.strand_key(pair.is_reverse)
        ltmp = []
        for bp_start, bp_end in self.place_pair(pair):
            b = self.bins(bp_start, bp_end)
            if b is not None:
                ltmp.append(Contribution(b[0], b[1], strand, weight))

        return ltmp

    def place(self, start, end, is_reverse):
        """Return bp intervals contributed by a single-end block `[start, end)`

        Parameters
        ----------
        start, end : int
            0-based, half-open coordinates of the alignment or block

        is_reverse : bool
            Strand of the alignment

        Returns
        -------
        list of tuple
        """
        raise NotImplementedError("Mode '%s' does not record single-end alignments." % self.mode.value)

    def place_pair(self, pair):
        """Return bp intervals contributed by a paired-end fragment

        Parameters
        ----------
        pair : |ReadPair|

        Returns
        -------
        list of tuple
        """
        raise NotImplementedError("Mode '%s' does not record paired-end fragments." % self.mode.value)

    def _shifted(self, position, is_reverse):
        shift = self.config.shift_bp
        return position - shift if is_reverse else position + shift


class StartStrategy(RecordingStrategy):
    """Record the 5' base of each read, moved `shift_bp` toward the 3' end"""
    mode = Mode.START

    def place(self, start, end, is_reverse):
        pos = self._shifted(end - 1 if is_reverse else start, is_reverse)
        return [(pos, pos + 1)]


class MidStrategy(RecordingStrategy):
    """Record the midpoint of each read or fragment"""
    mode = Mode.MID

    def place(self, start, end, is_reverse):
        pos = self._shifted((start + end - 1) // 2, is_reverse)
        return [(pos, pos + 1)]

    def place_pair(self, pair):
        pos = (pair.start + pair.end - 1) // 2
        return [(pos, pos + 1)]


class SpanStrategy(RecordingStrategy):
    """Record every position covered by each read or fragment"""
    mode = Mode.SPAN

    def place(self, start, end, is_reverse):
        return [(self._shifted(start, is_reverse), self._shifted(end, is_reverse))]

    def place_pair(self, pair):
        return [(pair.start, pair.end)]


class ExtendStrategy(RecordingStrategy):
    """Record `extend_bp` positions from the 5' end of each read toward its 3' end"""
    mode = Mode.EXTEND

    def place(self, start, end, is_reverse):
        ext = self.config.extend_bp
        if is_reverse:
            stop = self._shifted(end, True)
            return [(stop - ext, stop)]
        first = self._shifted(start, False)
        return [(first, first + ext)]


class CenterSpanStrategy(RecordingStrategy):
    """Record a window `2*floor(extend_bp/2)` wide centered on each read or fragment midpoint"""
    mode = Mode.CENTER_SPAN

    def _window(self, mid):
        half = self.config.half_extend()
        return [(mid - half + 1, mid + half + 1)]

    def place(self, start, end, is_reverse):
        return self._window(self._shifted((start + end - 1) // 2, is_reverse))

    def place_pair(self, pair):
        return self._window((pair.start + pair.end - 1) // 2)


class SmartPairedStrategy(RecordingStrategy):
    """Record the union of the blocks aligned by both mates of a fragment.
    Overlapping mates are counted once, and introns are left empty."""
    mode = Mode.SMART_PAIRED

    def _pair_intervals(self, pair):
        if not self.config.paired:
            raise TypeError("Single-end runs record AlignmentViews, not ReadPairs.")

        if any([self._too_long(X) for X in pair.mates]):
            return None

        bp_set = IntervalSet()
        for mate in pair.mates:
            for start, end in mate.segments:
                bp_set.add(start, end)

        # coalesce again after binning, so each bin receives the fragment once
        bin_set = IntervalSet()
        for start, end in bp_set:
            b = self.bins(start, end)
            if b is not None:
                bin_set.add(*b)

        weight = self.count_weight(pair)
        strand = self.strand_key(pair.is_reverse)
        return [Contribution(s, e, strand, weight) for s, e in bin_set]


class PairedEndpointsStrategy(RecordingStrategy):
    """Record both outer ends of each fragment"""
    mode = Mode.PAIRED_ENDPOINTS

    def place_pair(self, pair):
        return [(pair.start, pair.start + 1), (pair.end - 1, pair.end)]


class CoverageStrategy(RecordingStrategy):
    """Record raw per-base depth reported by the alignment source.

    Alignments are not visited individually, so no filter (mapping quality,
    flags, blacklist) applies in this mode.
    """
    mode = Mode.COVERAGE

    def intervals(self, item):
        raise TypeError("Coverage is read from the alignment source, not from individual alignments.")

    def bin_depth(self, depth, start):
        """Sum per-base `depth` beginning at bp `start` into bins

        Parameters
        ----------
        depth : :class:`numpy.ndarray`
            Depth at each position from `start`

        start : int
            Position of `depth[0]`. Must fall on a bin boundary.

        Returns
        -------
        int
            Index of the first bin

        :class:`numpy.ndarray`
            Summed depth in each bin
        """
        if start % self.bin_size != 0:
            raise ValueError("Coverage windows must begin on a bin boundary.")

        depth = numpy.asarray(depth)
        if len(depth) == 0 or self.bin_size == 1:
            return start // self.bin_size, depth

        edges = numpy.arange(0, len(depth), self.bin_size)
        return start // self.bin_size, numpy.add.reduceat(depth, edges)


_STRATEGIES = {
    X.mode: X
    for X in (
        StartStrategy, MidStrategy, SpanStrategy, ExtendStrategy, CenterSpanStrategy, SmartPairedStrategy,
        PairedEndpointsStrategy, CoverageStrategy
    )
}


def get_strategy(config):
    """Return the |RecordingStrategy| for `config.mode`

    Parameters
    ----------
    config : |RecordingConfig|

    Returns
    -------
    |RecordingStrategy|
    """
    return _STRATEGIES[config.mode](config)


def record(item, config):
    """Return one `(bin_index, strand, weight)` tuple per bin that `item` contributes to

    Parameters
    ----------
    item : |AlignmentView| or |ReadPair|

    config : |RecordingConfig|

    Returns
    -------
    list of tuple
    """
    return get_strategy(config).record(item)


def chromosome_bins(length, bin_size):
    """Number of bins needed to cover a chromosome of `length` bp"""
    return int(math.ceil(float(length) / bin_size))
