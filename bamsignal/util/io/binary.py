#!/usr/bin/env python
"""Tools for packing numeric signal into flat binary buffers, and for reading
fixed-format binary records

Signal values are stored as little-endian arrays of a single element width:

    =============   ==============   =============================================
    **Width**       **Bytes/value**  **Used when**
    -------------   --------------   ---------------------------------------------
    `'uint32'`      4                Counts are whole numbers (default)
    `'float32'`     4                Any fractional weighting or normalization
    =============   ==============   =============================================

See Also
--------
:py:mod:`struct`
    Binary data structures in Python
"""
import struct
from collections import namedtuple

import numpy

from bamsignal.util.services.exceptions import TruncatedChunkError

WIDTHS = {
    "uint32": numpy.dtype("<u4"),
    "float32": numpy.dtype("<f4"),
}
"""Element widths understood by |BinPacker|, mapped to their on-disk dtypes"""

WIDTH_CODES = {"uint32": 2, "float32": 3}
"""Single-byte codes used to record a width in a binary header"""

INT_WIDTH = "uint32"
FLOAT_WIDTH = "float32"


def width_from_code(code):
    """Return the width name recorded as `code` in a binary header

    Parameters
    ----------
    code : int
        Code from :data:`WIDTH_CODES`

    Returns
    -------
    str
    """
    for k, v in WIDTH_CODES.items():
        if v == code:
            return k

    raise ValueError("Unknown width code %s" % code)


class BinPacker(object):
    """Encode and decode sequences of per-bin values to and from flat binary buffers
    of a single element width.

    Integer widths are checked on encoding: negative, fractional or overflowing
    values raise :class:`ValueError` instead of wrapping silently, so a packed
    count is always exact.

    Parameters
    ----------
    width : str
        One of the keys of :data:`WIDTHS`

    Examples
    --------
    >>> packer = BinPacker("uint32")
    >>> buf = packer.encode([0, 3, 1])
    >>> list(packer.decode(buf, 3))
    [0, 3, 1]
    """

    def __init__(self, width=INT_WIDTH):
        if width not in WIDTHS:
            raise ValueError("Unknown bin width '%s'. Choose from %s." % (width, ", ".join(sorted(WIDTHS))))

        self.width = width
        self.dtype = WIDTHS[width]
        self.is_float = self.dtype.kind == "f"

    def __repr__(self):
        return "<BinPacker width=%s>" % self.width

    @property
    def itemsize(self):
        """Number of bytes occupied by one packed value"""
        return self.dtype.itemsize

    def encode(self, values):
        """Pack `values` into bytes

        Parameters
        ----------
        values : sequence or :class:`numpy.ndarray` of numbers

        Returns
        -------
        bytes
        """
        values = numpy.asarray(values)
        if values.size == 0:
            return b""

        if not self.is_float:
            if values.dtype.kind == "f" and not numpy.all(numpy.mod(values, 1) == 0):
                raise ValueError("Fractional values cannot be packed with integer width '%s'." % self.width)

            limit = numpy.iinfo(self.dtype).max
            if values.min() < 0 or values.max() > limit:
                raise ValueError("Values must lie within [0, %s] for width '%s'." % (limit, self.width))

        return values.astype(self.dtype).tobytes()

    def decode(self, buf, count=None):
        """Unpack `count` values from `buf`

        Parameters
        ----------
        buf : bytes
            Packed data

        count : int or None, optional
            Number of values to unpack. If `None`, all values in `buf` are
            unpacked.

        Returns
        -------
        :class:`numpy.ndarray`
            Unpacked values, in native byte order

        Raises
        ------
        TruncatedChunkError
            If `buf` holds fewer than `count` values
        """
        if count is None:
            count, remainder = divmod(len(buf), self.itemsize)
            if remainder != 0:
                raise TruncatedChunkError(len(buf) + self.itemsize - remainder, len(buf))

        needed = count * self.itemsize
        if len(buf) < needed:
            raise TruncatedChunkError(needed, len(buf))

        native = self.dtype.newbyteorder("=")
        return numpy.frombuffer(buf, dtype=self.dtype, count=count).astype(native)


def encode(values, width):
    """Pack `values` at element `width`. See :meth:`BinPacker.encode`"""
    return BinPacker(width).encode(values)


def decode(buf, width, count=None):
    """Unpack `count` values at element `width`. See :meth:`BinPacker.decode`"""
    return BinPacker(width).decode(buf, count)


class BinaryParserFactory(object):
    """Parser factory for different types of binary records.

    Creates parsers that unpack binary byte streams into dictionaries
    that match field names to values, and pack dictionaries back into bytes.
    These parsers are most useful as components of binary file readers.

    Attributes
    ----------
    name : str
        Human-readable name for parser

    fmt : str
        String specifying binary format of data, as specified in :py:mod:`struct`

    fields : list
        List of strings specifying variable names to bind to data
        when unpacked from a binary file, in same order as items in ``fmt``

    nt : :class:`~collections.namedtuple`
        A :class:`~collections.namedtuple` instance that will provide names
        to the unpacked data


    Examples
    --------
    A header for a packed signal file::

        >>> HeaderParser = BinaryParserFactory("Header","4sBd",["magic","width","count"])
        >>> fh = open("some_chunk.bin","rb")
        >>> HeaderParser(fh)
            { "magic" : "B2WC",
              "width" : 2,
              "count" : 1523.0 }


    See Also
    --------
    struct
        For information on format strings
    """

    def __init__(self, name, fmt, fields):
        self.name = name
        self.fmt = fmt
        self.fields = fields
        self.nt = namedtuple(name, fields)

    def __str__(self):
        return "<%s fmt='%s' fields='%s'>" % (self.name, self.fmt, ",".join(self.fields))

    def __repr__(self):
        return str(self)

    def __call__(self, fh, byte_order="<"):
        """Parse data from `fh` into a dictionary mapping field names to their values

        Parameters
        ----------
        fh : byte stream
            File-like pointing to binary data. Pointer in file must be
            aligned with start of record.

        byte_order : str
            Character indicating endian-ness of data (default: `'<'` for little-endian)

        Returns
        -------
        dict
            Dictionary mapping field names from `self.fields` to their values

        Raises
        ------
        TruncatedChunkError
            If `fh` ends before a full record is read
        """
        size = self.calcsize(byte_order)
        raw = fh.read(size)
        if len(raw) < size:
            raise TruncatedChunkError(size, len(raw), getattr(fh, "name", None))

        tmp_dict = self.nt._make(struct.unpack(byte_order + self.fmt, raw))._asdict()
        for k in tmp_dict:
            if isinstance(tmp_dict[k], bytes):
                tmp_dict[k] = tmp_dict[k].decode("ascii")

        return tmp_dict

    def pack(self, byte_order="<", **values):
        """Pack field values into a binary record

        Parameters
        ----------
        byte_order : str
            Character indicating endian-ness of data (default: `'<'` for little-endian)

        values : keyword arguments
            Values for each field in `self.fields`. Strings are encoded as ASCII.

        Returns
        -------
        bytes
        """
        ltmp = []
        for field in self.fields:
            v = values[field]
            ltmp.append(v.encode("ascii") if isinstance(v, str) else v)

        return struct.pack(byte_order + self.fmt, *ltmp)

    def calcsize(self, byte_order="<"):
        """Return calculated size, in bytes, of record

        Parameters
        ----------
        byte_order : str
            Character indicating endian-ness of data (default: `'<'` for little-endian)

        Returns
        -------
        int
            Calculated size of record, in bytes
        """
        return struct.calcsize(byte_order + self.fmt)
