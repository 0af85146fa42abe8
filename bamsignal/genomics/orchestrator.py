#!/usr/bin/env python
"""Run a whole signal-generation job, from BAM files to finished tracks.

Phases are coordinated only through files in a private temporary directory.
Each phase starts once the complete set of files from the previous phase is
present, and a missing or unexpected file aborts the run:

 #. **Shift estimation** (optional) on the first sample

 #. **Recording**. One |ChromosomeWorker| per (sample, chromosome) writes one
    file per strand. With one sample and no normalization, workers write text
    directly and the merge phase is skipped.

 #. **Merging**. One |Merger| per (chromosome, strand) combines and
    normalizes the samples into one chunk

 #. **Serialization**. Each merged chunk is written as text by a |WigWriter|

 #. **Concatenation** of text blocks, in chromosome order, into one output
    file per strand, then optional conversion to `BigWig`_

The temporary directory is removed whether or not the run succeeds. If the
run fails, partially written output files are removed as well.
"""
import glob
import multiprocessing
import os
import re
import shutil
import tempfile
from collections import Counter, namedtuple

from bamsignal.genomics.alignments import AlignmentSource
from bamsignal.genomics.chunks import BinaryChunk, merged_chunk_name, raw_chunk_name, wig_chunk_name
from bamsignal.genomics.merge import DEFAULT_MERGE_WINDOW, Merger, NormalizationPlan
from bamsignal.genomics.recording import BEDGRAPH
from bamsignal.genomics.shift import ShiftEstimator
from bamsignal.genomics.signal_buffer import DEFAULT_FLUSH_THRESHOLD
from bamsignal.genomics.wig_writer import WigWriter
from bamsignal.genomics.worker import WorkerTask, expected_files, process_chromosome
from bamsignal.plotting import shift_model_plot
from bamsignal.util.io.bigwig import convert_to_bigwig, write_chromosome_sizes
from bamsignal.util.io.openers import NullWriter, opener
from bamsignal.util.services.exceptions import ConfigurationError, MissingChunkError

import matplotlib.pyplot as plt

OUTPUT_EXTENSIONS = (".wig", ".bdg", ".bedgraph", ".bw")
"""Extensions removed from a requested output name"""

STRAND_SUFFIXES = {"f": "_f", "r": "_r"}

MergeTask = namedtuple(
    "MergeTask", ["plan", "tempdir", "n_samples", "chrom_index", "chrom", "strand", "window"]
)
"""Everything a child process needs to merge one (chromosome, strand)"""

WriteTask = namedtuple("WriteTask", ["config", "tempdir", "chrom_index", "chrom", "length", "strand"])
"""Everything a child process needs to serialize one merged chunk"""


def merge_task(task):
    """Merge the samples of one (chromosome, strand), removing their chunks

    Parameters
    ----------
    task : |MergeTask|

    Returns
    -------
    str
        Name of merged chunk
    """
    inputs = [raw_chunk_name(task.tempdir, X, task.chrom_index, task.strand) for X in range(task.n_samples)]
    outfile = merged_chunk_name(task.tempdir, task.chrom_index, task.strand)
    Merger(task.plan, window=task.window).merge(inputs, task.chrom, outfile)
    return outfile


def write_task(task):
    """Serialize one merged chunk as text, removing the chunk

    Parameters
    ----------
    task : |WriteTask|

    Returns
    -------
    str
        Name of text block
    """
    chunk = BinaryChunk.open(merged_chunk_name(task.tempdir, task.chrom_index, task.strand))
    outfile = wig_chunk_name(task.tempdir, task.chrom_index, task.strand)
    with open(outfile, "w") as fout:
        WigWriter.from_config(task.config).write_chunk(fout, task.chrom, task.length, chunk)
    chunk.delete()
    return outfile


def output_base(filename):
    """Strip track extensions from a requested output name"""
    if filename.endswith(".gz"):
        filename = filename[:-3]
    for ext in OUTPUT_EXTENSIONS:
        if filename.endswith(ext):
            return filename[:-len(ext)]
    return filename


class Orchestrator(object):
    """Coordinate all phases of one run

    Parameters
    ----------
    config : |RecordingConfig|
        Run settings

    bam_files : list of str
        Sorted, indexed BAM files, one per sample

    outfile : str
        Output filename or base name. Track extensions are removed and replaced.

    processes : int, optional
        Number of worker processes. 1 runs every phase in this process (Default: 2)

    blacklist : |BlackList| or None, optional
        Regions excluded from single-end recording

    chrom_exclude : str or None, optional
        Regular expression; matching chromosomes are skipped

    estimator : |ShiftEstimator| or None, optional
        Used if the configuration needs a shift estimate. If `None`, one with
        default settings is created

    model : bool, optional
        Write shift model tables and plot (Default: `False`)

    bigwig : bool, optional
        Convert output to `BigWig`_ (Default: `False`)

    bwapp : str or None, optional
        Path to conversion utility

    gz : bool, optional
        Compress text output (Default: `False`)

    track : str or None, optional
        If given, write a track line with this name

    args : :py:class:`argparse.Namespace` or dict or None, optional
        Run arguments, recorded in headers of model tables

    threshold : int, optional
        Flush threshold of signal buffers

    merge_window : int, optional
        Bins read at a time while merging

    verbose_stats : bool, optional
        Report alignment tallies per chromosome (Default: `False`)

    printer : file-like, optional
        A stream to which progress can be written (Default: |NullWriter|)

    tempdir : str or None, optional
        Parent directory for the temporary directory. If `None`, the
        directory of the output file

    Attributes
    ----------
    worker_function : callable
        Function run for each |WorkerTask|. Defaults to
        :func:`~bamsignal.genomics.worker.process_chromosome`
    """

    def __init__(
        self,
        config,
        bam_files,
        outfile,
        processes=2,
        blacklist=None,
        chrom_exclude=None,
        estimator=None,
        model=False,
        bigwig=False,
        bwapp=None,
        gz=False,
        track=None,
        args=None,
        threshold=DEFAULT_FLUSH_THRESHOLD,
        merge_window=DEFAULT_MERGE_WINDOW,
        verbose_stats=False,
        printer=None,
        tempdir=None
    ):
        if len(bam_files) == 0:
            raise ConfigurationError("At least one BAM file is required.")
        if processes < 1:
            raise ConfigurationError("Number of processes must be >= 1, found %s." % processes)
        if bigwig and gz:
            raise ConfigurationError("BigWig conversion reads uncompressed text. Use `--gz` or `--bw`, not both.")

        self.config = config
        self.bam_files = list(bam_files)
        self.outbase = output_base(outfile)
        self.processes = processes
        self.blacklist = blacklist
        try:
            self.chrom_exclude = None if chrom_exclude is None else re.compile(chrom_exclude)
        except re.error as e:
            raise ConfigurationError("Invalid chromosome pattern '%s': %s" % (chrom_exclude, e))
        self.estimator = estimator
        self.model = model
        self.bigwig = bigwig
        self.bwapp = bwapp
        self.gz = gz
        self.track = track
        self.args = {} if args is None else args
        self.threshold = threshold
        self.merge_window = merge_window
        self.verbose_stats = verbose_stats
        self.printer = NullWriter() if printer is None else printer
        self.tempdir = tempdir
        self.worker_function = process_chromosome
        self.shift_result = None
        self.results = []

    def __repr__(self):
        return "<Orchestrator %s samples -> %s>" % (len(self.bam_files), self.outbase)

    @property
    def direct(self):
        """`True` if workers write text directly, skipping the merge phase"""
        return len(self.bam_files) == 1 and not self.config.uses_scaling

    def strand_label(self, strand):
        """Suffix naming `strand` in output files and track lines, after any flip"""
        if not self.config.strand_split:
            return ""
        if self.config.flip:
            strand = "r" if strand == "f" else "f"
        return STRAND_SUFFIXES[strand]

    def output_name(self, strand):
        """Name of the text output file for `strand`

        Parameters
        ----------
        strand : str
            `'f'` or `'r'`

        Returns
        -------
        str
        """
        ext = ".bdg" if self.config.wig_format == BEDGRAPH else ".wig"
        name = self.outbase + self.strand_label(strand) + ext
        if self.gz:
            name += ".gz"
        return name

    def load_chromosomes(self):
        """Return the chromosomes to process, in header order

        All samples must declare the same chromosomes with the same lengths.

        Returns
        -------
        list of |Chromosome|

        Raises
        ------
        ConfigurationError
            If sample headers differ
        """
        reference = None
        for filename in self.bam_files:
            with AlignmentSource(filename) as source:
                chroms = source.chromosomes()
            if reference is None:
                reference = chroms
            elif chroms != reference:
                raise ConfigurationError("Chromosomes in '%s' differ from those in '%s'." % (filename, self.bam_files[0]))

        if self.chrom_exclude is not None:
            reference = [X for X in reference if self.chrom_exclude.search(X.name) is None]

        if len(reference) == 0:
            raise ConfigurationError("No chromosomes left to process.")

        return reference

    def _map(self, function, tasks):
        if self.processes > 1 and len(tasks) > 1:
            pool = multiprocessing.Pool(processes=min(self.processes, len(tasks)))
            try:
                return pool.map(function, tasks, 1)
            finally:
                pool.close()
                pool.join()

        return [function(X) for X in tasks]

    def check_files(self, tempdir, suffix, expected):
        """Make sure that exactly the files `expected` are present

        Parameters
        ----------
        tempdir : str
            Temporary directory

        suffix : str
            Extension of files produced by the phase

        expected : list of str
            Files that must be present

        Raises
        ------
        MissingChunkError
            If any file is missing, or unexpected files are present
        """
        found = set([os.path.normpath(X) for X in glob.glob(os.path.join(tempdir, "*" + suffix))])
        if suffix == ".bin":
            found = set([X for X in found if not X.endswith(".merged.bin")])
        expected = set([os.path.normpath(X) for X in expected])
        missing = sorted(expected - found)
        if len(missing) > 0 or len(found) != len(expected):
            raise MissingChunkError(
                "Expected %s intermediate files, found %s. Missing: %s" %
                (len(expected), len(found), ", ".join([os.path.basename(X) for X in missing]) or "none")
            )

    def estimate_shift(self, chromosomes):
        """Estimate the shift of the first sample and return the resolved configuration"""
        estimator = self.estimator or ShiftEstimator(min_mapq=self.config.min_mapq, processes=self.processes)
        estimator.printer = self.printer
        result = estimator.estimate(self.bam_files[0], chromosomes)
        self.shift_result = result
        self.printer.write("Using shift of %s bp." % result.shift)

        if self.model:
            for fn in result.write_model(self.outbase, self.args):
                self.printer.write("Wrote %s" % fn)
            fig, _ = shift_model_plot(
                result.model_table(), result.correlation_table(), result.shift, title=os.path.basename(self.outbase)
            )
            fig.savefig("%s_model.png" % self.outbase)
            plt.close(fig)

        return self.config.with_estimated_shift(result.shift)

    def record(self, config, chromosomes, tempdir):
        """Run one worker per (sample, chromosome) and check their output

        Returns
        -------
        list of |WorkerResult|
        """
        direct = self.direct
        tasks = []
        for sample_id, filename in enumerate(self.bam_files):
            for chrom_index, chrom in enumerate(chromosomes):
                blacklist = None if self.blacklist is None else self.blacklist.subset([chrom.name])
                tasks.append(
                    WorkerTask(
                        config, filename, sample_id, chrom_index, chrom.name, chrom.length, tempdir, blacklist,
                        direct, self.threshold
                    )
                )

        self.printer.write(
            "Recording %s samples on %s chromosomes with %s processes ..." %
            (len(self.bam_files), len(chromosomes), self.processes)
        )
        results = self._map(self.worker_function, tasks)

        expected = expected_files(tempdir, config, len(self.bam_files), len(chromosomes), direct=direct)
        self.check_files(tempdir, ".wig" if direct else ".bin", expected)
        return results

    def report(self, results):
        """Write per-sample totals, and per-chromosome tallies if verbose"""
        for sample_id, filename in enumerate(self.bam_files):
            mine = [X for X in results if X.sample_id == sample_id]
            skipped = Counter()
            for result in mine:
                skipped.update(result.skipped)
                if self.verbose_stats:
                    self.printer.write(
                        "%s\t%s\trecorded=%s\t%s" % (
                            os.path.basename(filename), result.chrom, result.count,
                            "\t".join(["%s=%s" % (K, V) for K, V in sorted(result.skipped.items())])
                        )
                    )
            total = sum([X.count for X in mine])
            self.printer.write("%s: recorded %.2f, skipped %s" % (filename, total, sum(skipped.values())))

    def merge(self, config, chromosomes, results, tempdir):
        """Merge and serialize all (chromosome, strand) units

        Returns
        -------
        |NormalizationPlan|
        """
        counts = [0.0] * len(self.bam_files)
        for result in results:
            counts[result.sample_id] += result.count

        plan = NormalizationPlan.from_config(counts, config)
        self.printer.write("Merging with %s ..." % plan)

        merge_tasks = []
        write_tasks = []
        for chrom_index, chrom in enumerate(chromosomes):
            for strand in config.strands:
                merge_tasks.append(
                    MergeTask(plan, tempdir, len(self.bam_files), chrom_index, chrom.name, strand, self.merge_window)
                )
                write_tasks.append(WriteTask(config, tempdir, chrom_index, chrom.name, chrom.length, strand))

        self._map(merge_task, merge_tasks)
        self.check_files(
            tempdir, ".merged.bin", [merged_chunk_name(tempdir, X.chrom_index, X.strand) for X in merge_tasks]
        )

        self._map(write_task, write_tasks)
        self.check_files(tempdir, ".wig", [wig_chunk_name(tempdir, X.chrom_index, X.strand) for X in write_tasks])
        return plan

    def concatenate(self, config, chromosomes, tempdir, outfiles=None):
        """Join text blocks in chromosome order into output files

        Parameters
        ----------
        outfiles : list or None, optional
            If given, each output filename is appended before the file is opened

        Returns
        -------
        list of str
            Output filenames
        """
        outfiles = [] if outfiles is None else outfiles
        for strand in config.strands:
            outfile = self.output_name(strand)
            outfiles.append(outfile)
            with opener(outfile, "w") as fout:
                if self.track is not None:
                    fout.write(WigWriter.track_line(self.track + self.strand_label(strand), config.wig_format))
                for chrom_index in range(len(chromosomes)):
                    fn = wig_chunk_name(tempdir, chrom_index, strand)
                    with open(fn) as fin:
                        shutil.copyfileobj(fin, fout)
                    os.remove(fn)
            self.printer.write("Wrote %s" % outfile)

        return outfiles

    def convert(self, outfiles, chromosomes, tempdir):
        """Convert output files to `BigWig`_, keeping text files that fail"""
        sizes = write_chromosome_sizes(os.path.join(tempdir, "chrom.sizes"), chromosomes)
        converted = []
        for outfile in outfiles:
            bw = convert_to_bigwig(outfile, sizes, app=self.bwapp, printer=self.printer)
            converted.append(outfile if bw is None else bw)
        return converted

    def run(self):
        """Run all phases

        Returns
        -------
        list of str
            Output filenames

        Raises
        ------
        Bam2WigError
            If any phase fails. No output files are left behind.
        """
        config = self.config
        chromosomes = self.load_chromosomes()
        if config.needs_shift_estimate:
            config = self.estimate_shift(chromosomes)

        parent = self.tempdir or os.path.dirname(os.path.abspath(self.outbase))
        tempdir = tempfile.mkdtemp(prefix=os.path.basename(self.outbase) + "_tmp_", dir=parent)
        outfiles = []
        success = False
        try:
            self.results = self.record(config, chromosomes, tempdir)
            self.report(self.results)
            if not self.direct:
                self.merge(config, chromosomes, self.results, tempdir)
            self.concatenate(config, chromosomes, tempdir, outfiles)
            if self.bigwig:
                outfiles = self.convert(outfiles, chromosomes, tempdir)
            success = True
        finally:
            shutil.rmtree(tempdir, ignore_errors=True)
            if not success:
                for fn in outfiles:
                    if os.path.exists(fn):
                        os.remove(fn)

        return outfiles
