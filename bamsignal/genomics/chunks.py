#!/usr/bin/env python
"""File-backed packed signal for one (sample, chromosome, strand) unit.

Each chunk file holds a fixed 24-byte header followed by the packed values:

    ==========  ========  =====================================================
    **Field**   **Type**  **Meaning**
    ----------  --------  -----------------------------------------------------
    magic       4 bytes   `B2WC`
    width       uint8     element width code (see :mod:`bamsignal.util.io.binary`)
    count       float64   weighted number of alignments recorded in the unit
    length      uint64    number of packed values that follow
    ==========  ========  =====================================================

Chunks are named so that the set expected after a processing phase can be
listed in advance and compared against what is present in the temporary
directory (see :func:`raw_chunk_name` and :func:`merged_chunk_name`).
"""
import os

from bamsignal.util.io.binary import BinaryParserFactory, BinPacker, WIDTH_CODES, width_from_code
from bamsignal.util.services.exceptions import MalformedFileError, TruncatedChunkError

MAGIC = "B2WC"

ChunkHeader = BinaryParserFactory("ChunkHeader", "4sB3xdQ", ["magic", "width", "count", "length"])
"""Parser for chunk headers"""

RAW_SUFFIX = ".bin"
MERGED_SUFFIX = ".merged.bin"
WIG_SUFFIX = ".wig"


def raw_chunk_name(tempdir, sample_id, chrom_index, strand):
    """Name of the chunk produced by a worker for one (sample, chromosome, strand)"""
    return os.path.join(tempdir, "%04d.%06d.%s%s" % (sample_id, chrom_index, strand, RAW_SUFFIX))


def merged_chunk_name(tempdir, chrom_index, strand):
    """Name of the normalized chunk produced by the merger for one (chromosome, strand)"""
    return os.path.join(tempdir, "%06d.%s%s" % (chrom_index, strand, MERGED_SUFFIX))


def wig_chunk_name(tempdir, chrom_index, strand):
    """Name of the serialized text block for one (chromosome, strand)"""
    return os.path.join(tempdir, "%06d.%s%s" % (chrom_index, strand, WIG_SUFFIX))


class BinaryChunk(object):
    """Handle on a packed chunk file

    Use :meth:`write` to create a chunk from packed bytes, :meth:`create` to
    stream values into a new chunk, and :meth:`open` to read an existing one.

    Attributes
    ----------
    filename : str
        Path to chunk file

    width : str
        Element width of packed values

    count : float
        Weighted number of alignments recorded in the unit

    length : int
        Number of packed values
    """

    def __init__(self, filename, width, count, length):
        self.filename = filename
        self.width = width
        self.count = count
        self.length = length
        self.packer = BinPacker(width)

    def __repr__(self):
        return "<BinaryChunk %s width=%s count=%s length=%s>" % (self.filename, self.width, self.count, self.length)

    @staticmethod
    def _header(width, count, length):
        return ChunkHeader.pack(magic=MAGIC, width=WIDTH_CODES[width], count=float(count), length=int(length))

    @classmethod
    def write(cls, filename, packed, width, count):
        """Write packed values to a new chunk file

        Parameters
        ----------
        filename : str
            Path to chunk file

        packed : bytes
            Values packed at `width`

        width : str
            Element width

        count : float
            Weighted alignment count for the unit

        Returns
        -------
        |BinaryChunk|
        """
        length = len(packed) // BinPacker(width).itemsize
        with open(filename, "wb") as fout:
            fout.write(cls._header(width, count, length))
            fout.write(packed)

        return cls(filename, width, count, length)

    @classmethod
    def create(cls, filename, width, count, length):
        """Open a |ChunkWriter| that streams `length` values into a new chunk"""
        return ChunkWriter(filename, width, count, length)

    @classmethod
    def open(cls, filename):
        """Read the header of an existing chunk file

        Parameters
        ----------
        filename : str
            Path to chunk file

        Returns
        -------
        |BinaryChunk|

        Raises
        ------
        MalformedFileError
            If the file is not a chunk file

        TruncatedChunkError
            If the file holds fewer values than its header declares
        """
        with open(filename, "rb") as fh:
            header = ChunkHeader(fh)

        if header["magic"] != MAGIC:
            raise MalformedFileError(filename, "Not a packed signal chunk.")

        width = width_from_code(header["width"])
        chunk = cls(filename, width, header["count"], header["length"])

        expected = ChunkHeader.calcsize() + chunk.length * chunk.packer.itemsize
        found = os.path.getsize(filename)
        if found < expected:
            raise TruncatedChunkError(expected, found, filename)

        return chunk

    def windows(self, window_size):
        """Yield successive arrays of at most `window_size` values

        Parameters
        ----------
        window_size : int
            Number of values per window

        Yields
        ------
        :class:`numpy.ndarray`
        """
        itemsize = self.packer.itemsize
        remaining = self.length
        with open(self.filename, "rb") as fh:
            fh.seek(ChunkHeader.calcsize())
            while remaining > 0:
                n = min(window_size, remaining)
                buf = fh.read(n * itemsize)
                if len(buf) < n * itemsize:
                    raise TruncatedChunkError(n * itemsize, len(buf), self.filename)
                yield self.packer.decode(buf, n)
                remaining -= n

    def read_all(self):
        """Return all values as one array. Intended for small chunks and tests."""
        with open(self.filename, "rb") as fh:
            fh.seek(ChunkHeader.calcsize())
            buf = fh.read()

        try:
            return self.packer.decode(buf, self.length)
        except TruncatedChunkError as e:
            e.filename = self.filename
            raise

    def delete(self):
        """Remove the chunk file"""
        os.remove(self.filename)


class ChunkWriter(object):
    """Write a chunk window by window, when its length is known in advance

    Parameters
    ----------
    filename : str
        Path to chunk file

    width : str
        Element width

    count : float
        Weighted alignment count for the unit

    length : int
        Number of values that will be written
    """

    def __init__(self, filename, width, count, length):
        self.chunk = BinaryChunk(filename, width, count, length)
        self.written = 0
        self._fh = open(filename, "wb")
        self._fh.write(BinaryChunk._header(width, count, length))

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        if exc_type is None:
            self.close()
        else:
            self._fh.close()

    def write(self, values):
        """Pack and append `values`"""
        self._fh.write(self.chunk.packer.encode(values))
        self.written += len(values)

    def close(self):
        """Close the file, checking that the declared number of values was written

        Returns
        -------
        |BinaryChunk|
        """
        self._fh.close()
        if self.written != self.chunk.length:
            raise TruncatedChunkError(self.chunk.length, self.written, self.chunk.filename)
        return self.chunk
