#!/usr/bin/env python
"""Helpers shared by unit and functional tests: hand-built alignments, an
in-memory alignment source, a writer for small sorted, indexed BAM files,
and a reader that expands written tracks back into arrays.
"""
import contextlib
import os
import warnings

import numpy
import pysam
from numpy.testing import suppress_warnings

from bamsignal.genomics.alignments import AlignmentView, Chromosome
from bamsignal.util.io.filters import CommentReader, SkipBlankReader
from bamsignal.util.io.openers import opener
from bamsignal.util.services import exceptions
from bamsignal.util.services.exceptions import DataWarning

#===============================================================================
# Warnings suppression
#
# Use within bodies of test functions as e.g. `with sup_data: foo`
#===============================================================================

sup_data = suppress_warnings()
sup_data.filter(category=DataWarning)


@contextlib.contextmanager
def fresh_warnings():
    """Record every warning issued in the block, ignoring filters installed
    by earlier tests. Yields the list of caught warnings."""
    saved = list(exceptions.family_filters)
    del exceptions.family_filters[:]
    exceptions.once_registry.clear()
    try:
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            yield caught
    finally:
        exceptions.family_filters[:] = saved
        exceptions.once_registry.clear()

#===============================================================================
# INDEX: hand-built alignments
#===============================================================================


def read(start, length=20, is_reverse=False, chrom="chrA", name=None, **kwargs):
    """Build a single-end |AlignmentView| covering `[start, start+length)`"""
    name = "r%s%s" % (start, "-" if is_reverse else "+") if name is None else name
    return AlignmentView(chrom, start, start + length, is_reverse=is_reverse, name=name, **kwargs)


def mate_pair(name, left, right, length=20, chrom="chrA", read1_reverse=False, **kwargs):
    """Build the two mates of a properly paired fragment

    Parameters
    ----------
    name : str
        Query name shared by both mates

    left, right : int
        Start of the forward and of the reverse mate

    read1_reverse : bool, optional
        If `True`, the reverse mate is read 1

    Returns
    -------
    |AlignmentView|, |AlignmentView|
        Forward mate, reverse mate
    """
    insert = right + length - left
    common = dict(chrom=chrom, name=name, is_paired=True, is_proper_pair=True, mate_chrom=chrom)
    common.update(kwargs)
    fw = read(
        left,
        length=length,
        is_reverse=False,
        mate_start=right,
        mate_is_reverse=True,
        insert_size=insert,
        is_read1=not read1_reverse,
        is_read2=read1_reverse,
        **common
    )
    rc = read(
        right,
        length=length,
        is_reverse=True,
        mate_start=left,
        mate_is_reverse=False,
        insert_size=-insert,
        is_read1=read1_reverse,
        is_read2=not read1_reverse,
        **common
    )
    return fw, rc


class FakeSource(object):
    """Stand-in for |AlignmentSource| that serves hand-built alignments

    Parameters
    ----------
    alignments : list of |AlignmentView|
        Alignments, sorted by start

    lengths : dict, optional
        Chromosome lengths (Default: `{"chrA": 1000}`)
    """

    def __init__(self, alignments, lengths=None):
        self.alignments = sorted(alignments, key=lambda x: x.start)
        self.lengths = {"chrA": 1000} if lengths is None else lengths

    def chromosomes(self):
        return [Chromosome(K, V) for K, V in self.lengths.items()]

    def fetch(self, chrom, start=None, end=None):
        for a in self.alignments:
            if a.chrom == chrom:
                yield a

    def mapped_on(self, chrom):
        return len([X for X in self.alignments if X.chrom == chrom])

    def coverage(self, chrom, start, end):
        depth = numpy.zeros(end - start, dtype=numpy.int64)
        for a in self.alignments:
            if a.chrom != chrom:
                continue
            for seg_start, seg_end in a.segments:
                s = max(seg_start, start)
                e = min(seg_end, end)
                if e > s:
                    depth[s - start:e - start] += 1
        return depth

    def close(self):
        pass


#===============================================================================
# INDEX: BAM files
#===============================================================================


def write_bam(filename, lengths, reads):
    """Write and index a small coordinate-sorted BAM file

    Parameters
    ----------
    filename : str
        Output path

    lengths : list of tuple
        `(chromosome name, length)` in header order

    reads : list of dict
        One dict per alignment with keys `chrom`, `start`, and optionally
        `length` (20), `reverse` (`False`), `name`, `cigar` (list of
        `(op, length)`), `seq` (all `A`), `flag` (extra flag bits), `mapq` (60), `nh`,
        `mate_start`, `tlen`

    Returns
    -------
    str
        `filename`
    """
    header = {
        "HD": {"VN": "1.0", "SO": "coordinate"},
        "SQ": [{"SN": K, "LN": V} for K, V in lengths],
    }
    tids = {K: n for n, (K, _) in enumerate(lengths)}
    ordered = sorted(reads, key=lambda x: (tids[x["chrom"]], x["start"]))

    with pysam.AlignmentFile(filename, "wb", header=header) as fout:
        for n, spec in enumerate(ordered):
            length = spec.get("length", 20)
            cigar = spec.get("cigar", [(0, length)])
            qlen = sum([L for op, L in cigar if op in (0, 1, 4, 7, 8)])

            seg = pysam.AlignedSegment()
            seg.query_name = spec.get("name", "read%05d" % n)
            seg.query_sequence = spec.get("seq", "A" * qlen)
            seg.query_qualities = pysam.qualitystring_to_array("I" * qlen)
            seg.flag = (16 if spec.get("reverse", False) else 0) | spec.get("flag", 0)
            seg.reference_id = tids[spec["chrom"]]
            seg.reference_start = spec["start"]
            seg.mapping_quality = spec.get("mapq", 60)
            seg.cigartuples = cigar
            if "mate_start" in spec:
                seg.next_reference_id = tids[spec["chrom"]]
                seg.next_reference_start = spec["mate_start"]
                seg.template_length = spec.get("tlen", 0)
            else:
                seg.next_reference_id = -1
                seg.next_reference_start = -1
                seg.template_length = 0
            if "nh" in spec:
                seg.set_tag("NH", spec["nh"])
            fout.write(seg)

    pysam.index(filename)
    return filename


def paired_reads(name, left, right, length=20, chrom="chrA"):
    """Return `write_bam` specs for a properly paired fragment, read 1 forward"""
    insert = right + length - left
    return [
        dict(
            chrom=chrom,
            start=left,
            length=length,
            name=name,
            flag=0x1 | 0x2 | 0x20 | 0x40,
            mate_start=right,
            tlen=insert
        ),
        dict(
            chrom=chrom,
            start=right,
            length=length,
            name=name,
            reverse=True,
            flag=0x1 | 0x2 | 0x80,
            mate_start=left,
            tlen=-insert
        ),
    ]


def synthetic_reads(windows=42):
    """Return `write_bam` specs for a ChIP-like chrA: one forward and one reverse
    read per 500 bp window as background, plus a peak of 100 forward reads at
    10170 and 100 reverse reads at 10320"""
    reads = []
    for w in range(windows):
        reads.append(dict(chrom="chrA", start=500 * w + 50))
        reads.append(dict(chrom="chrA", start=500 * w + 290, reverse=True))
    for _ in range(100):
        reads.append(dict(chrom="chrA", start=10170))
        reads.append(dict(chrom="chrA", start=10320, reverse=True))
    return reads


#===============================================================================
# INDEX: reading tracks back
#===============================================================================


def wiggle_to_arrays(fh, chrom_lengths):
    """Expand `bedGraph`_, fixedStep or variableStep text into per-position arrays

    Positions absent from the text are 0. Intervals running past the end of a
    chromosome are clipped.

    Parameters
    ----------
    fh : file-like
        Open text stream

    chrom_lengths : dict
        Chromosome names mapped to lengths

    Returns
    -------
    dict
        Chromosome names mapped to :class:`numpy.ndarray` of values
    """
    arrays = {K: numpy.zeros(V, dtype=float) for K, V in chrom_lengths.items()}
    fmt = chrom = None
    span = step = counter = 1
    for line in CommentReader(SkipBlankReader(fh)):
        items = line.split()
        if items[0] in ("variableStep", "fixedStep"):
            info = dict([X.split("=", 1) for X in items[1:]])
            fmt = items[0]
            chrom = info["chrom"]
            span = int(info.get("span", 1))
            step = int(info.get("step", 1))
            counter = int(info.get("start", 1))
            continue

        if len(items) == 4:
            chrom, start, stop, value = items[0], int(items[1]), int(items[2]), float(items[3])
        elif fmt == "variableStep":
            start = int(items[0]) - 1
            stop, value = start + span, float(items[1])
        else:
            start = counter - 1
            stop, value = start + span, float(items[0])
            counter += step

        arrays[chrom][start:min(stop, chrom_lengths[chrom])] = value

    return arrays


def read_track(filename, lengths):
    """Read a wiggle or bedGraph file, gzipped or not, into per-position arrays"""
    with opener(filename) as fh:
        return wiggle_to_arrays(fh, dict(lengths))


def listdir(path):
    return sorted(os.listdir(path))
