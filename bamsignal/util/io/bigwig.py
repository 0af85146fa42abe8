#!/usr/bin/env python
"""Convert finished `wiggle`_ and `bedGraph`_ files to `BigWig`_ with the
UCSC command-line utilities `wigToBigWig` or `bedGraphToBigWig`.

Conversion is optional. If no utility can be found, or the utility fails,
a warning is issued and the text file is kept.
"""
import os
import shutil
import subprocess

from bamsignal.util.io.openers import NullWriter
from bamsignal.util.services.exceptions import ArgumentWarning, DataWarning, warn

BIGWIG_APPS = ("wigToBigWig", "bedGraphToBigWig")


def write_chromosome_sizes(filename, chromosomes):
    """Write a two-column chromosome sizes file

    Parameters
    ----------
    filename : str
        Output filename

    chromosomes : list of |Chromosome|

    Returns
    -------
    str
        `filename`
    """
    with open(filename, "w") as fout:
        for chrom in chromosomes:
            fout.write("%s\t%s\n" % (chrom.name, chrom.length))

    return filename


def find_bigwig_app(app=None):
    """Locate a conversion utility

    Parameters
    ----------
    app : str or None, optional
        Path to `wigToBigWig` or `bedGraphToBigWig`, or a directory
        containing one. If `None`, search the `PATH`

    Returns
    -------
    str or None
        Path to utility, or `None` if none is found
    """
    if app is not None:
        if os.path.isdir(app):
            for name in BIGWIG_APPS:
                candidate = os.path.join(app, name)
                if os.access(candidate, os.X_OK):
                    return candidate
            return None
        return app if os.access(app, os.X_OK) else shutil.which(app)

    for name in BIGWIG_APPS:
        found = shutil.which(name)
        if found is not None:
            return found

    return None


def bigwig_name(filename):
    """Return the `BigWig`_ filename corresponding to a text track"""
    for ext in (".gz", ".wig", ".bdg", ".bedgraph"):
        if filename.endswith(ext):
            filename = filename[:-len(ext)]
    return filename + ".bw"


def convert_to_bigwig(filename, chrom_sizes, app=None, printer=None):
    """Convert `filename` to `BigWig`_ and remove it on success

    Parameters
    ----------
    filename : str
        Uncompressed `wiggle`_ or `bedGraph`_ file

    chrom_sizes : str
        Chromosome sizes file, as from :func:`write_chromosome_sizes`

    app : str or None, optional
        Utility path, passed to :func:`find_bigwig_app`

    printer : file-like, optional
        A stream to which progress can be written (Default: |NullWriter|)

    Returns
    -------
    str or None
        Name of `BigWig`_ file, or `None` if conversion failed and
        the text file was kept
    """
    printer = NullWriter() if printer is None else printer
    path = find_bigwig_app(app)
    if path is None:
        warn("Could not find wigToBigWig or bedGraphToBigWig. Keeping '%s'." % filename, ArgumentWarning)
        return None

    outfile = bigwig_name(filename)
    if os.path.basename(path).startswith("wigToBigWig"):
        cmd = [path, "-clip", filename, chrom_sizes, outfile]
    else:
        cmd = [path, filename, chrom_sizes, outfile]

    printer.write("Converting to bigWig: '%s'" % " ".join(cmd))
    try:
        retcode = subprocess.call(cmd)
    except OSError as e:
        warn("Could not run '%s': %s. Keeping '%s'." % (path, e, filename), DataWarning)
        return None

    if retcode != 0 or not os.path.exists(outfile):
        warn("%s exited with status %s. Keeping '%s'." % (os.path.basename(path), retcode, filename), DataWarning)
        if os.path.exists(outfile):
            os.remove(outfile)
        return None

    os.remove(filename)
    return outfile
