#!/usr/bin/env python
"""This module contains custom exception and warning classes, implements
a custom warning filter action, called `"onceperfamily"`, and monkey-patches
warning output to improve legibility.

Contents:

.. contents::
   :local:

The `onceperfamily` action
--------------------------
`onceperfamily` groups warning messages by families of regular expressions,
and only prints the first warning instance that matches a given family's
regular expression. In contrast, Python's native `once` action prints any string
literal once, even if it matches the same regex as another warning already given.

This matters for signal generation, where a single malformed chromosome or
alignment pattern can otherwise produce millions of near-identical warnings.

Create the filter with :func:`filterwarnings` and issue warnings with :func:`warn`.
Both accept the same arguments as their counterparts in :mod:`warnings`.


Exception types
---------------
|Bam2WigError|
    Base class for all fatal errors raised while producing a signal track

|ConfigurationError|
    Invalid or mutually exclusive settings. Raised before any work is done

|DataError|
    Fatal inconsistencies in intermediate data. Subclasses:

      - |OutOfOrderWriteError|
      - |TruncatedChunkError|
      - |MissingChunkError|
      - |ShiftEstimationError|

|MalformedFileError|
    Raised when a file cannot be parsed as expected, and
    execution must halt


Warning types
-------------
|ArgumentWarning|
    Warning for command-line arguments that are nonsensical, but recoverable

|DataWarning|
    Warning raised when data has unexpected but recoverable values, or when
    skipping an operation is permissible

|FileFormatWarning|
    Warning for skippable lines in otherwise readable input files


See also
--------
:mod:`warnings`
    Warnings module
"""
import re
import warnings
import inspect
import linecache
import textwrap
from bamsignal.util.io.filters import colored

_wrapper = textwrap.TextWrapper(break_long_words=False, width=77)

#===============================================================================
# INDEX: Exception classes
#===============================================================================


class Bam2WigError(Exception):
    """Base class for errors that abort a signal-track run"""
    pass


class ConfigurationError(Bam2WigError, ValueError):
    """Raised when run settings are invalid or mutually exclusive"""
    pass


class DataError(Bam2WigError):
    """Raised when intermediate data are inconsistent. A run that raises
    this must not produce output, because the output would be wrong."""
    pass


class OutOfOrderWriteError(DataError):
    """Raised when a value is added to a |SignalBuffer| at a bin that
    has already been flushed to packed storage"""

    def __init__(self, bin_index, live_offset):
        DataError.__init__(self, bin_index, live_offset)
        self.bin_index = bin_index
        self.live_offset = live_offset

    def __str__(self):
        return "Cannot write to bin %s: bins before %s have already been flushed. Is the input sorted?" % (
            self.bin_index, self.live_offset
        )


OutOfOrderWrite = OutOfOrderWriteError


class TruncatedChunkError(DataError):
    """Raised when a packed buffer or chunk file holds fewer values than declared"""

    def __init__(self, expected, found, filename=None):
        DataError.__init__(self, expected, found, filename)
        self.expected = expected
        self.found = found
        self.filename = filename

    def __str__(self):
        where = "" if self.filename is None else " in '%s'" % self.filename
        return "Truncated chunk%s: expected %s, found %s." % (where, self.expected, self.found)


class MissingChunkError(DataError):
    """Raised when the set of intermediate files does not match the expected set"""
    pass


class ShiftEstimationError(DataError):
    """Raised when no sampled window yields a usable shift value"""
    pass


class MalformedFileError(Exception):
    """Exception class for when files cannot be parsed as they should be
    """

    def __init__(self, filename, message, line_num=None):
        """Create a |MalformedFileError|

        Parameters
        ----------
        filename : str
            Name of file causing problem

        message : str
            Message explaining how the file is malformed.

        line_num : int or None, optional
            Number of line causing problems
        """
        Exception.__init__(self, filename, message, line_num)
        self.filename = filename
        self.msg = message
        self.line_num = line_num

    def __str__(self):
        if self.line_num is None:
            return "Error opening file '%s': %s" % (self.filename, self.msg)
        else:
            return "Error opening file '%s' at line %s: %s" % (self.filename, self.line_num, self.msg)


#===============================================================================
# INDEX: Warning classes
#===============================================================================


class ArgumentWarning(Warning):
    """Warning for nonsensical but recoverable combinations of command-line arguments"""
    pass


class FileFormatWarning(Warning):
    """Warning for input files that contain lines which can be skipped, such as
    empty intervals in a blacklist"""
    pass


class DataWarning(Warning):
    """Warning for unexpected attributes of data.
    Raised when:

      - data has unexpected attributes
      - data has nonsensical, but recoverable values
      - values are out of the domain of a given operation, but execution
        can continue if the value is estimated or the operation skipped
    """




#===============================================================================
# INDEX: extensions to Python warnings
#===============================================================================

once_registry = {}
"""`onceperfamily` families already reported in this process"""

family_filters = []
"""`(action, message regex, category, module regex, lineno)` for each `onceperfamily` filter"""


def filterwarnings(action, message="", category=Warning, module="", lineno=0, append=0):
    """Add a warnings filter. Arguments are as in :func:`warnings.filterwarnings`,
    with one more `action`: `'onceperfamily'` shows only the first warning whose
    text matches the regular expression `message`.
    """
    if action != "onceperfamily":
        warnings.filterwarnings(
            action, message=message, category=category, module=module, lineno=lineno, append=append
        )
        return

    tup = (action, re.compile(message, re.I), category, re.compile(module), lineno)
    if tup not in family_filters:
        if append == 1:
            family_filters.append(tup)
        else:
            family_filters.insert(0, tup)


def _seen_family(message, category, module, lineno):
    """Return `True` if a `onceperfamily` filter matching this warning already fired"""
    for _, pat, filter_category, mod, filter_line in family_filters:
        if pat.match(message) and issubclass(category, filter_category) \
           and mod.match(module) and filter_line in (0, lineno):
            key = (pat.pattern, filter_category, mod.pattern, filter_line)
            if key in once_registry:
                return True
            once_registry[key] = 1
            return False

    return False


def warn(message, category=UserWarning, stacklevel=1):
    """Issue a warning, honoring `onceperfamily` filters

    Parameters
    ----------
    message : str

    category : subclass of :class:`Warning`, optional
        (Default: :class:`UserWarning`)

    stacklevel : int, optional
        Frame to which the warning is attributed (Default: 1, the caller)
    """
    _, filename, lineno, _, _, _ = inspect.stack()[stacklevel]
    if _seen_family(message, category, filename, lineno):
        return

    warnings.warn_explicit(message, category, filename, lineno, module=filename)


def formatwarning(message, category, filename, lineno, file=None, line=None):
    """Colorized replacement for :func:`warnings.formatwarning`. Shows the
    warning type, the wrapped message and the surrounding source lines."""
    sep = colored("-" * 75, color="cyan")
    message = str(message)
    if "\n" not in message:
        message = _wrapper.fill(message)

    if line is None:
        width = len(str(lineno + 3))
        lines = []
        for x in range(max(0, lineno - 2), lineno + 3):
            text = linecache.getline(filename, x).strip("\n")
            if text:
                attrs = ["bold"] if x == lineno else []
                lines.append("%s %s" % (colored(str(x).rjust(width), color="green", attrs=attrs), colored(text, attrs=attrs)))
        line = "\n".join(lines)

    return "\n".join([
        sep,
        colored(category.__name__, color="cyan", attrs=["bold"]),
        colored(message, color="white", attrs=["bold"]),
        "in %s, line %s:" % (colored(filename, color="cyan"), lineno),
        "",
        line,
        "",
        sep,
        "",
    ])


warnings.formatwarning = formatwarning
