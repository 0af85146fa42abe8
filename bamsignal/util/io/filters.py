#!/usr/bin/env python
"""Stream filters, used like Unix pipes around open file objects.

Readers:

    :class:`CommentReader`
        skip comment, ``track`` and ``browser`` lines of UCSC-style text files

    :class:`SkipBlankReader`
        skip blank lines

Writers:

    :class:`NameDateWriter`
        prefix each line with the program name and a timestamp. Command-line
        scripts report progress on stderr through one of these.

:func:`colored` colors text with :func:`termcolor.colored`, but only when
:obj:`sys.stderr` is a terminal.

Examples
--------
Read a blacklist, skipping comments and blank lines::

    >>> reader = CommentReader(SkipBlankReader(open("blacklist.bed")))
    >>> for line in reader:
    >>>     pass

Report progress::

    >>> printer = NameDateWriter("bam2wig")
    >>> printer.write("Counting chrI ...")
"""
import sys
import datetime
from abc import abstractmethod
from io import IOBase

import termcolor

if hasattr(sys.stderr, "isatty") and sys.stderr.isatty():
    colored = termcolor.colored
else:
    colored = lambda x, **kwargs: str(x)

#===============================================================================
# INDEX: readers
#===============================================================================


class AbstractReader(IOBase):
    """Wraps a line iterator and passes each line through :meth:`filter`.
    Subclasses either return the line or call ``self.__next__()`` to drop it.

    Parameters
    ----------
    stream : file-like
        Open text stream
    """

    def __init__(self, stream):
        self.stream = stream

    def readable(self):
        return True

    def __next__(self):
        return self.filter(next(self.stream))

    def __iter__(self):
        return self

    def close(self):
        if hasattr(self.stream, "close"):
            self.stream.close()

    @abstractmethod
    def filter(self, line):
        pass


class SkipBlankReader(AbstractReader):
    """Drops whitespace-only lines"""

    def filter(self, line):
        if len(line.strip()) == 0:
            return self.__next__()
        return line


class CommentReader(AbstractReader):
    """Drops lines whose first non-space characters are `'#'`, ``track`` or
    ``browser``. Dropped lines are kept, stripped, in :attr:`comments`.
    """

    comment_starts = ("#", "track", "browser")

    def __init__(self, stream):
        AbstractReader.__init__(self, stream)
        self.comments = []

    def filter(self, line):
        ltmp = line.lstrip()
        if len(ltmp) > 1 and ltmp.startswith(self.comment_starts):
            self.comments.append(line.strip())
            return self.__next__()
        return line


#===============================================================================
# INDEX: writers
#===============================================================================


class AbstractWriter(IOBase):
    """Formats data through :meth:`filter` before writing it to `stream`

    Parameters
    ----------
    stream : file-like, open for writing
    """

    def __init__(self, stream):
        self.stream = stream

    def writable(self):
        return True

    def write(self, data):
        self.stream.write(self.filter(data))

    def flush(self):
        self.stream.flush()

    def close(self):
        """Flush, then close `stream` unless it is stdout or stderr"""
        if self.stream.closed:
            return
        self.flush()
        if self.stream not in (sys.stdout, sys.stderr):
            self.stream.close()

    @abstractmethod
    def filter(self, data):
        pass


class NameDateWriter(AbstractWriter):
    """Prefix each line of output with a program name, date and time

    Parameters
    ----------
    name : str
        Program name

    line_delimiter : str, optional
        Appended to each line (Default: `'\\n'`)

    stream : file-like, optional
        Destination (Default: :obj:`sys.stderr`). Prefixes are colored when
        `stream` is a terminal.
    """

    def __init__(self, name, line_delimiter="\n", stream=None):
        AbstractWriter.__init__(self, sys.stderr if stream is None else stream)
        self.name = name
        self.delimiter = line_delimiter

        tty = hasattr(self.stream, "isatty") and self.stream.isatty()
        paint = termcolor.colored if tty else (lambda x, **kwargs: x)
        self.fmtstr = "%s %s%s %s%s: {2}%s" % (
            paint(name, color="blue", attrs=["bold"]),
            paint("[", color="blue", attrs=["bold"]),
            paint("{0}", color="green"),
            paint("{1}", color="green", attrs=["bold"]),
            paint("]", color="blue", attrs=["bold"]),
            self.delimiter,
        )

    def filter(self, line):
        now = datetime.datetime.now()
        return self.fmtstr.format(now.strftime("%Y-%m-%d"), now.strftime("%H:%M:%S"), line.strip(self.delimiter))
