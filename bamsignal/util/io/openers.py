#!/usr/bin/env python
"""Opening and naming files.

:py:func:`opener`
    Open a file as text, gzipped or not, depending on its extension.

:py:func:`argsopener`
    Open a file for writing, headed by the run's arguments as a commented
    dictionary. Shift model tables are written this way.

:py:class:`NullWriter`
    A printer that discards everything. Library classes use it when no
    printer is given.
"""
import sys
import os
import re
import gzip
import datetime
from bamsignal.util.io.filters import AbstractWriter


class NullWriter(AbstractWriter):
    """Writes to :obj:`os.devnull`"""

    def __init__(self):
        AbstractWriter.__init__(self, open(os.devnull, "w"))

    def filter(self, data):
        return data

    def __repr__(self):
        return "NullWriter()"


def opener(filename, mode="r", **kwargs):
    """Open `filename`, through :func:`gzip.open` if it ends with `'.gz'`

    Gzipped files are opened in text mode unless `mode` contains `'b'`, so
    that callers write wiggle text the same way whether or not it is
    compressed.

    Parameters
    ----------
    filename : str

    mode : str, optional
        `'r'`, `'w'` or `'a'`, with or without `'b'` (Default: `'r'`)

    **kwargs
        Passed to :func:`open` or :func:`gzip.open`
    """
    if not filename.endswith(".gz"):
        return open(filename, mode, **kwargs)

    if "b" not in mode and "t" not in mode:
        mode += "t"
    return gzip.open(filename, mode, **kwargs)


def get_short_name(inpt, separator=os.path.sep, terminator=""):
    """Strip `terminator` and everything up to the last `separator` from `inpt`

    Examples
    --------
    >>> get_short_name("/home/jdoe/bam2wig.py", terminator=".py")
    'bam2wig'

    >>> get_short_name("bamsignal.bin.bam2wig", separator="\\.")
    'bam2wig'
    """
    if terminator and inpt.endswith(terminator):
        inpt = inpt[:-len(terminator)]

    match = re.search(r"([^%s]+)$" % separator, inpt)
    return inpt if match is None else match.group(1)


def argsopener(filename, namespace, mode="w", **kwargs):
    """Open `filename` for writing and write `namespace` to it as a comment block

    Parameters
    ----------
    filename : str
        Gzipped if it ends with `'.gz'`

    namespace : :py:class:`argparse.Namespace` or dict
        Arguments to record

    mode : str, optional
        `'w'` or `'a'` (Default: `'w'`)

    Returns
    -------
    open filehandle
    """
    fout = opener(filename, mode, **kwargs)
    fout.write(args_to_comment(namespace))
    return fout


def args_to_comment(namespace):
    """Format an :class:`argparse.Namespace` or dict as `'##'`-prefixed lines
    holding the date, the command line and one line per argument

    Returns
    -------
    str
    """
    items = namespace if isinstance(namespace, dict) else vars(namespace)
    ltmp = [
        "## date = '%s'" % datetime.datetime.today(),
        "## execstr = '%s'" % " ".join(sys.argv),
        "## args = {",
    ]
    if len(items) > 0:
        width = 2 + max([len(K) for K in items])
        for k, v in sorted(items.items()):
            v = "'%s'" % v if isinstance(v, str) else v
            ltmp.append(("##   {0:<%s} : {1}," % width).format("'%s'" % k, v))
    ltmp.append("##        }\n")
    return "\n".join(ltmp)
