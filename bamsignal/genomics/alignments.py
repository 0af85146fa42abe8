#!/usr/bin/env python
"""Read-only views of read alignments, and an alignment source over
sorted, indexed `BAM`_ files.

The recording machinery in :mod:`bamsignal.genomics.recording` never touches
:class:`pysam.AlignedSegment` objects directly. Instead, each alignment is
copied into a small |AlignmentView| holding only what is needed to place it,
weight it and filter it. This keeps recording rules pure functions of their
inputs, lets paired mates be held in memory after :mod:`pysam` recycles its
record buffers, and lets tests build alignments by hand.

Summary
-------
|Chromosome|
    Name and length of a reference sequence

|AlignmentView|
    Coordinates, strand, flags and spliced segments of one alignment

|ReadPair|
    A forward and a reverse mate that together describe one fragment

|AlignmentSource|
    Wrapper around :class:`pysam.AlignmentFile` that lists chromosomes,
    fetches alignments in order, and reports raw per-base depth
"""
from collections import namedtuple

import numpy
import pysam

Chromosome = namedtuple("Chromosome", ["name", "length"])
"""Name and length of one reference sequence, in header declaration order"""

# CIGAR operations, as numbered by the SAM specification
_REF_CONSUMING = (0, 2, 7, 8)  # M, D, =, X
_REF_SKIP = 3  # N

#===============================================================================
# INDEX: alignment views
#===============================================================================


class AlignmentView(object):
    """Minimal, immutable description of one read alignment

    Coordinates are 0-based and half-open. `segments` lists the aligned blocks
    of the read, split only at reference skips (`N` in the CIGAR string);
    deletions are absorbed into their surrounding block.

    Parameters
    ----------
    chrom : str
        Chromosome name

    start : int
        Leftmost aligned position (0-based, inclusive)

    end : int
        Rightmost aligned position (0-based, exclusive)

    is_reverse : bool, optional
        Whether the read aligns to the reverse strand (Default: `False`)

    segments : list of tuple, optional
        Ordered `(start, end)` blocks. If `None`, the alignment is a single
        block `[(start, end)]`

    name : str, optional
        Query name, used to match paired mates

    mapping_quality : int, optional
        Mapping quality (Default: 255)

    multimap_count : int or None, optional
        Number of reported alignments for this read (`NH` tag), if known

    is_secondary, is_duplicate, is_supplementary, is_qcfail : bool, optional
        Alignment flags

    is_paired, is_proper_pair, is_read1, is_read2 : bool, optional
        Pairing flags

    mate_chrom : str or None, optional
        Chromosome of the mate

    mate_start : int or None, optional
        Start of the mate

    mate_is_reverse : bool, optional
        Whether the mate aligns to the reverse strand

    insert_size : int, optional
        Signed template length
    """

    __slots__ = (
        "chrom", "start", "end", "is_reverse", "segments", "name", "mapping_quality", "multimap_count",
        "is_secondary", "is_duplicate", "is_supplementary", "is_qcfail", "is_paired", "is_proper_pair", "is_read1",
        "is_read2", "mate_chrom", "mate_start", "mate_is_reverse", "insert_size"
    )

    def __init__(
        self,
        chrom,
        start,
        end,
        is_reverse=False,
        segments=None,
        name="",
        mapping_quality=255,
        multimap_count=None,
        is_secondary=False,
        is_duplicate=False,
        is_supplementary=False,
        is_qcfail=False,
        is_paired=False,
        is_proper_pair=False,
        is_read1=False,
        is_read2=False,
        mate_chrom=None,
        mate_start=None,
        mate_is_reverse=False,
        insert_size=0
    ):
        if end < start:
            raise ValueError("Alignment end (%s) precedes start (%s)." % (end, start))

        self.chrom = chrom
        self.start = start
        self.end = end
        self.is_reverse = is_reverse
        self.segments = [(start, end)] if segments is None else list(segments)
        self.name = name
        self.mapping_quality = mapping_quality
        self.multimap_count = multimap_count
        self.is_secondary = is_secondary
        self.is_duplicate = is_duplicate
        self.is_supplementary = is_supplementary
        self.is_qcfail = is_qcfail
        self.is_paired = is_paired
        self.is_proper_pair = is_proper_pair
        self.is_read1 = is_read1
        self.is_read2 = is_read2
        self.mate_chrom = mate_chrom
        self.mate_start = mate_start
        self.mate_is_reverse = mate_is_reverse
        self.insert_size = insert_size

    def __repr__(self):
        return "<AlignmentView %s:%s-%s(%s) %s>" % (self.chrom, self.start, self.end, self.strand, self.name)

    @property
    def strand(self):
        """`'+'` or `'-'`"""
        return "-" if self.is_reverse else "+"

    @property
    def is_spliced(self):
        """`True` if the alignment contains a reference skip"""
        return len(self.segments) > 1

    @property
    def max_gap(self):
        """Length of the longest gap between consecutive segments (0 if unspliced)"""
        return max([0] + [self.segments[i + 1][0] - self.segments[i][1] for i in range(len(self.segments) - 1)])

    @staticmethod
    def segments_from_cigar(start, cigartuples):
        """Split an alignment into blocks at reference skips

        Parameters
        ----------
        start : int
            Leftmost aligned position

        cigartuples : list of tuple
            `(operation, length)` pairs, as from :attr:`pysam.AlignedSegment.cigartuples`

        Returns
        -------
        list of tuple
            `(start, end)` of each block
        """
        segments = []
        seg_start = pos = start
        for op, length in cigartuples:
            if op in _REF_CONSUMING:
                pos += length
            elif op == _REF_SKIP:
                if pos > seg_start:
                    segments.append((seg_start, pos))
                pos += length
                seg_start = pos

        if pos > seg_start:
            segments.append((seg_start, pos))

        return segments

    @classmethod
    def from_pysam(cls, read):
        """Copy the fields needed for recording out of a :class:`pysam.AlignedSegment`

        Parameters
        ----------
        read : :class:`pysam.AlignedSegment`

        Returns
        -------
        |AlignmentView|
        """
        start = read.reference_start
        segments = cls.segments_from_cigar(start, read.cigartuples or [])
        end = segments[-1][1] if len(segments) > 0 else read.reference_end
        return cls(
            read.reference_name,
            start,
            end,
            is_reverse=read.is_reverse,
            segments=segments or None,
            name=read.query_name,
            mapping_quality=read.mapping_quality,
            multimap_count=read.get_tag("NH") if read.has_tag("NH") else None,
            is_secondary=read.is_secondary,
            is_duplicate=read.is_duplicate,
            is_supplementary=read.is_supplementary,
            is_qcfail=read.is_qcfail,
            is_paired=read.is_paired,
            is_proper_pair=read.is_proper_pair,
            is_read1=read.is_read1,
            is_read2=read.is_read2,
            mate_chrom=read.next_reference_name if read.is_paired and not read.mate_is_unmapped else None,
            mate_start=read.next_reference_start if read.is_paired else None,
            mate_is_reverse=read.mate_is_reverse if read.is_paired else False,
            insert_size=read.template_length,
        )


class ReadPair(object):
    """A properly oriented pair of mates

    Parameters
    ----------
    forward : |AlignmentView|
        Mate on the forward strand (leftmost)

    reverse : |AlignmentView|
        Mate on the reverse strand

    Attributes
    ----------
    start, end : int
        Outer boundaries of the fragment, 0-based half-open

    is_reverse : bool
        Strand of the fragment, taken from the first mate in the pair
    """

    def __init__(self, forward, reverse):
        self.forward = forward
        self.reverse = reverse
        self.chrom = forward.chrom
        self.start = min(forward.start, reverse.start)
        self.end = max(forward.end, reverse.end)

        if reverse.is_read1:
            self.is_reverse = True
        else:
            self.is_reverse = False

    def __repr__(self):
        return "<ReadPair %s:%s-%s(%s) %s>" % (self.chrom, self.start, self.end, self.strand, self.forward.name)

    @property
    def strand(self):
        return "-" if self.is_reverse else "+"

    @property
    def fragment_length(self):
        return self.end - self.start

    @property
    def mates(self):
        return (self.forward, self.reverse)


#===============================================================================
# INDEX: alignment source
#===============================================================================


class AlignmentSource(object):
    """Sequential access to a sorted, indexed `BAM`_ file

    Parameters
    ----------
    filename : str
        Path to BAM file. An index (`.bai` or `.csi`) must exist alongside it.

    Attributes
    ----------
    filename : str
        Path to BAM file
    """

    def __init__(self, filename):
        self.filename = filename
        self.bamfile = pysam.AlignmentFile(filename, "rb")
        if not self.bamfile.has_index():
            self.bamfile.close()
            raise IOError("BAM file '%s' has no index. Index it with `samtools index` first." % filename)

    def __repr__(self):
        return "<AlignmentSource %s>" % self.filename

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def close(self):
        self.bamfile.close()

    def chromosomes(self):
        """Return chromosomes in header declaration order

        Returns
        -------
        list of |Chromosome|
        """
        return [Chromosome(K, V) for K, V in zip(self.bamfile.references, self.bamfile.lengths)]

    def mapped(self):
        """Number of mapped alignments reported by the index"""
        return self.bamfile.mapped

    def mapped_on(self, chrom):
        """Number of mapped alignments on `chrom` reported by the index"""
        for stats in self.bamfile.get_index_statistics():
            if stats.contig == chrom:
                return stats.mapped
        return 0

    def fetch(self, chrom, start=None, end=None):
        """Yield mapped alignments on `chrom` in non-decreasing start order

        Parameters
        ----------
        chrom : str
            Chromosome name

        start, end : int or None, optional
            Region boundaries. If `None`, the whole chromosome is fetched

        Yields
        ------
        |AlignmentView|
        """
        for read in self.bamfile.fetch(chrom, start, end):
            if read.is_unmapped:
                continue
            yield AlignmentView.from_pysam(read)

    def coverage(self, chrom, start, end):
        """Raw per-base depth over `[start, end)`, counting every base
        aligned by every alignment, without filtering. Bases called `N` count
        like any other; deleted and skipped reference positions do not.

        Parameters
        ----------
        chrom : str
            Chromosome name

        start, end : int
            Region boundaries

        Returns
        -------
        :class:`numpy.ndarray`
            Depth at each position in the region
        """
        depth = numpy.zeros(end - start, dtype=numpy.int64)
        for read in self.bamfile.fetch(chrom, start, end):
            for block_start, block_end in read.get_blocks():
                block_start = max(block_start, start)
                block_end = min(block_end, end)
                if block_end > block_start:
                    depth[block_start - start:block_end - start] += 1

        return depth
