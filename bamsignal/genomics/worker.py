#!/usr/bin/env python
"""Record the signal of one sample on one chromosome.

A |ChromosomeWorker| owns everything needed for one (sample, chromosome)
unit: a |SignalBuffer| per output strand, the table of paired mates waiting
for their partner, and tallies of recorded and rejected alignments (together,
a |WorkerState|). Nothing is shared between workers, so units can run in
separate processes without locks. Each worker leaves exactly one file per
strand in the temporary directory:

    ==================   =============================================================
    **Path**             **File**
    ------------------   -------------------------------------------------------------
    merge path           |BinaryChunk| named by :func:`~bamsignal.genomics.chunks.raw_chunk_name`
    direct path          text named by :func:`~bamsignal.genomics.chunks.wig_chunk_name`,
                         used when one sample is processed without normalization
    ==================   =============================================================

:func:`process_chromosome` is the picklable entry point used with
:mod:`multiprocessing`.
"""
import heapq
import os
from collections import Counter, OrderedDict, namedtuple

from bamsignal.genomics.alignments import AlignmentSource, ReadPair
from bamsignal.genomics.chunks import BinaryChunk, raw_chunk_name, wig_chunk_name
from bamsignal.genomics.recording import AlignmentFilter, Mode, chromosome_bins, get_strategy
from bamsignal.genomics.signal_buffer import DEFAULT_FLUSH_THRESHOLD, SignalBuffer
from bamsignal.genomics.wig_writer import WigWriter
from bamsignal.util.io.openers import NullWriter

COVERAGE_WINDOW = 10000
"""Number of bins of depth requested from the alignment source at a time"""

WorkerResult = namedtuple("WorkerResult", ["sample_id", "chrom_index", "chrom", "count", "skipped", "files"])
"""Summary of one finished (sample, chromosome) unit"""

WorkerTask = namedtuple(
    "WorkerTask", [
        "config", "filename", "sample_id", "chrom_index", "chrom", "length", "tempdir", "blacklist", "direct",
        "threshold"
    ]
)
"""Everything a child process needs to run one |ChromosomeWorker|"""


class WorkerState(object):
    """Mutable state of one (sample, chromosome) unit

    Attributes
    ----------
    buffers : dict
        |SignalBuffer| for each output strand key

    pending : :class:`collections.OrderedDict`
        First-seen mates waiting for their partner, keyed by
        `(name, start, mate_start)` in order of arrival

    expiry : list
        Heap of `(mate_start, key)` for entries of `pending`. Entries whose
        mate was found are dropped when they reach the top.

    count : float
        Weighted number of recorded alignments or fragments

    skipped : :class:`collections.Counter`
        Number of rejected items, by reason
    """

    def __init__(self, strands, width, threshold=DEFAULT_FLUSH_THRESHOLD):
        self.buffers = {K: SignalBuffer(width, threshold=threshold) for K in strands}
        self.pending = OrderedDict()
        self.expiry = []
        self.count = 0.0
        self.skipped = Counter()

    def __repr__(self):
        return "<WorkerState count=%s pending=%s skipped=%s>" % (self.count, len(self.pending), sum(self.skipped.values()))

    def find_mate(self, alignment):
        """Return and remove the waiting partner of `alignment`, or store
        `alignment` and return `None` if its partner has not been seen

        Parameters
        ----------
        alignment : |AlignmentView|

        Returns
        -------
        |AlignmentView| or None
        """
        mate = self.pending.pop((alignment.name, alignment.mate_start, alignment.start), None)
        if mate is None:
            key = (alignment.name, alignment.start, alignment.mate_start)
            self.pending[key] = alignment
            heapq.heappush(self.expiry, (alignment.mate_start, key))
        return mate

    def expire_mates(self, position):
        """Drop waiting mates whose partner should already have appeared before
        `position`, wherever they sit in arrival order

        Returns
        -------
        int
            Number of mates dropped
        """
        n = 0
        while len(self.expiry) > 0 and self.expiry[0][0] < position:
            _, key = heapq.heappop(self.expiry)
            if self.pending.pop(key, None) is not None:
                n += 1

        if n > 0:
            self.skipped["orphan"] += n
        return n

    @property
    def oldest_pending(self):
        """Start of the oldest waiting mate, or `None`"""
        if len(self.pending) == 0:
            return None
        return next(iter(self.pending))[1]


class ChromosomeWorker(object):
    """Record one sample on one chromosome

    Parameters
    ----------
    config : |RecordingConfig|
        Run settings. Any shift must already be resolved.

    source : |AlignmentSource|
        Open alignment source for the sample

    sample_id : int
        Index of the sample

    chrom_index : int
        Index of the chromosome in output order

    chrom : str
        Chromosome name

    length : int
        Chromosome length in bp

    tempdir : str
        Directory for output files

    blacklist : |BlackList| or None, optional
        Regions to exclude

    direct : bool, optional
        Write text output instead of a |BinaryChunk| (Default: `False`)

    threshold : int, optional
        Flush threshold of each |SignalBuffer|

    printer : file-like, optional
        A stream to which progress can be written (Default: |NullWriter|)
    """

    def __init__(
        self,
        config,
        source,
        sample_id,
        chrom_index,
        chrom,
        length,
        tempdir,
        blacklist=None,
        direct=False,
        threshold=DEFAULT_FLUSH_THRESHOLD,
        printer=None
    ):
        if config.needs_shift_estimate:
            raise ValueError("Shift must be estimated before recording.")

        self.config = config
        self.source = source
        self.sample_id = sample_id
        self.chrom_index = chrom_index
        self.chrom = chrom
        self.length = length
        self.tempdir = tempdir
        self.direct = direct
        self.printer = NullWriter() if printer is None else printer
        self.strategy = get_strategy(config)
        self.filter = AlignmentFilter(config, blacklist)
        self.state = WorkerState(config.strands, config.raw_width, threshold=threshold)
        self._reach = config.shift_bp + config.extend_bp

    def __repr__(self):
        return "<ChromosomeWorker sample=%s %s>" % (self.sample_id, self.chrom)

    def run(self):
        """Record all alignments on the chromosome and write output files

        Returns
        -------
        |WorkerResult|
        """
        if self.config.mode == Mode.COVERAGE:
            self.record_coverage()
        else:
            self.record_alignments()

        files = self.write()
        state = self.state
        self.printer.write(
            "Sample %s, %s: recorded %s, skipped %s" %
            (self.sample_id, self.chrom, _format_count(state.count), sum(state.skipped.values()))
        )
        return WorkerResult(self.sample_id, self.chrom_index, self.chrom, state.count, dict(state.skipped), files)

    def record_alignments(self):
        """Filter, pair and record each alignment"""
        state = self.state
        for alignment in self.source.fetch(self.chrom):
            reason = self.filter.check(alignment)
            if reason is not None:
                state.skipped[reason] += 1
                continue

            if self.config.paired:
                state.expire_mates(alignment.start)
                mate = state.find_mate(alignment)
                if mate is None:
                    continue
                if alignment.is_reverse:
                    item = ReadPair(mate, alignment)
                else:
                    item = ReadPair(alignment, mate)
                reason = self.filter.check_pair(item)
                if reason is not None:
                    state.skipped[reason] += 1
                    continue
            else:
                item = alignment

            self.add(item)
            self.flush(alignment.start)

        if len(state.pending) > 0:
            state.skipped["orphan"] += len(state.pending)
            state.pending.clear()
            state.expiry = []

    def add(self, item):
        """Add the contributions of one alignment or fragment to the buffers"""
        contributions = self.strategy.intervals(item)
        if contributions is None:
            self.state.skipped["intron"] += 1
            return

        buffers = self.state.buffers
        for c in contributions:
            buffers[c.strand].add_range(c.start, c.end, c.weight)
        self.state.count += self.strategy.count_weight(item)

    def flush(self, position):
        """Let buffers pack bins that no later alignment can reach

        Parameters
        ----------
        position : int
            Start of the current alignment
        """
        oldest = self.state.oldest_pending
        if oldest is not None:
            position = min(position, oldest)
        keep_from = max(position - self._reach, 0) // self.config.bin_size
        for buf in self.state.buffers.values():
            buf.flush_if_large(keep_from)

    def record_coverage(self):
        """Copy per-base depth from the alignment source into the buffer"""
        buf = self.state.buffers["f"]
        step = COVERAGE_WINDOW * self.config.bin_size
        for start in range(0, self.length, step):
            end = min(start + step, self.length)
            first_bin, values = self.strategy.bin_depth(self.source.coverage(self.chrom, start, end), start)
            buf.add_values(first_bin, values)
            buf.flush_if_large()

        # depth is counted in bases, not alignments
        self.state.count = float(self.source.mapped_on(self.chrom))

    def write(self):
        """Finalize buffers and write one file per strand

        Returns
        -------
        list of str
            Paths written
        """
        n_bins = chromosome_bins(self.length, self.config.bin_size)
        width = self.config.raw_width
        files = []
        for strand in self.config.strands:
            packed = self.state.buffers[strand].finalize(n_bins)
            if self.direct:
                fn = wig_chunk_name(self.tempdir, self.chrom_index, strand)
                values = self.state.buffers[strand].packer.decode(packed, n_bins)
                with open(fn, "w") as fout:
                    WigWriter.from_config(self.config).write_array(fout, self.chrom, self.length, values)
            else:
                fn = raw_chunk_name(self.tempdir, self.sample_id, self.chrom_index, strand)
                BinaryChunk.write(fn, packed, width, self.state.count)
            files.append(fn)

        return files


def _format_count(count):
    return "%d" % count if float(count).is_integer() else "%.2f" % count


def process_chromosome(task):
    """Run one |ChromosomeWorker| from a |WorkerTask|, opening the alignment
    source in the calling process

    Parameters
    ----------
    task : |WorkerTask|

    Returns
    -------
    |WorkerResult|
    """
    with AlignmentSource(task.filename) as source:
        worker = ChromosomeWorker(
            task.config,
            source,
            task.sample_id,
            task.chrom_index,
            task.chrom,
            task.length,
            task.tempdir,
            blacklist=task.blacklist,
            direct=task.direct,
            threshold=task.threshold,
        )
        return worker.run()


def expected_files(tempdir, config, n_samples, n_chroms, direct=False):
    """List the files that workers must leave in `tempdir`

    Parameters
    ----------
    tempdir : str
        Temporary directory

    config : |RecordingConfig|
        Run settings

    n_samples, n_chroms : int
        Number of samples and chromosomes

    direct : bool, optional
        Whether workers write text output directly

    Returns
    -------
    list of str
    """
    ltmp = []
    for chrom_index in range(n_chroms):
        for strand in config.strands:
            if direct:
                ltmp.append(wig_chunk_name(tempdir, chrom_index, strand))
            else:
                ltmp.extend([raw_chunk_name(tempdir, X, chrom_index, strand) for X in range(n_samples)])

    return [os.path.normpath(X) for X in ltmp]
