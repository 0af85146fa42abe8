#!/usr/bin/env python
"""Convert read alignments in one or more sorted, indexed `BAM`_ files into a
genome-wide signal track in `wiggle`_, `bedGraph`_, or `BigWig`_ format.

Each alignment (or, with ``--pe``, each properly paired fragment) is reduced
to the positions chosen by the position mode, and a weight is added to each
position. One mode is required:

    ==============   ===============================================================
    **Mode**         **Positions recorded**
    --------------   ---------------------------------------------------------------
    ``--start``      5' end of each read, after any shift
    ``--mid``        Midpoint of each read or fragment
    ``--span``       Every aligned position of each read or fragment
    ``--extend``     ``--extval`` positions from the 5' end of each read
    ``--cspan``      A window of ``--extval`` positions centered on each read
    ``--coverage``   Raw per-base depth. Filters do not apply.
    ``--smartpe``    The union of the blocks aligned by both mates (requires ``--pe``)
    ``--ends``       Both outer ends of each fragment (requires ``--pe``)
    ==============   ===============================================================

Single-end reads from fragment libraries (e.g. ChIP-seq) can be moved toward
the fragment center with ``--shift N``. Given without a number, the shift is
estimated from the first sample by cross-correlating forward- and
reverse-strand profiles at high-coverage regions. With ``--model``, the
estimated profiles and correlations are written to
`OUTBASE_model.txt` and `OUTBASE_correlations.txt` and plotted to
`OUTBASE_model.png`.

When several samples are given, they are summed, or averaged with ``--mean``.
With ``--rpm``, each sample is first scaled to reads per million, and
``--scale`` multiplies every value by fixed factors.

Chromosomes are processed in parallel (``--cpu``), and each worker keeps only
a small window of the chromosome in memory. Work is shared through a
temporary directory created next to the output, which is removed when the
run ends.


Output files
------------
    OUTBASE.wig, OUTBASE.bdg
        Signal track, depending on ``--format``. With ``--strand``, one file
        per strand is written as `OUTBASE_f` and `OUTBASE_r`. With ``--gz``,
        files are compressed. With ``--bw``, files are converted to
        `OUTBASE.bw` if `wigToBigWig` or `bedGraphToBigWig` can be found.
"""
import argparse
import inspect
import sys
import warnings

from bamsignal.genomics.orchestrator import Orchestrator
from bamsignal.util.io.filters import NameDateWriter
from bamsignal.util.io.openers import get_short_name
from bamsignal.util.scriptlib.argparsers import BaseParser, RecordingParser
from bamsignal.util.scriptlib.help_formatters import format_module_docstring
from bamsignal.util.services.exceptions import Bam2WigError, ConfigurationError

warnings.simplefilter("once")
printer = NameDateWriter(get_short_name(inspect.stack()[-1][1]))


def main(argv=sys.argv[1:]):
    """Command-line program

    Parameters
    ----------
    argv : list, optional
        A list of command-line arguments, which will be processed
        as if the script were called from the command line if
        :func:`main` is called directly.

        Default: `sys.argv[1:]`. The command-line arguments, if the script is
        invoked from the command line

    Returns
    -------
    list of str
        Names of output files
    """
    bp = BaseParser()
    rp = RecordingParser()

    parser = argparse.ArgumentParser(
        description=format_module_docstring(__doc__),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        parents=[bp.get_parser(), rp.get_parser()]
    )
    args = parser.parse_args(argv)
    bp.get_base_ops_from_args(args)

    try:
        config = rp.get_config_from_args(args)
        estimator = rp.get_estimator_from_args(args, printer=printer) if config.needs_shift_estimate else None
        blacklist = rp.get_blacklist_from_args(args, printer=printer)
        job = Orchestrator(
            config,
            args.infiles,
            args.out,
            processes=args.cpu,
            blacklist=blacklist,
            chrom_exclude=args.chrskip,
            estimator=estimator,
            model=args.model,
            bigwig=args.bw,
            bwapp=args.bwapp,
            gz=args.gz,
            track=args.track,
            args=args,
            verbose_stats=args.verbose_stats,
            printer=printer,
        )
    except ConfigurationError as e:
        parser.error(str(e))

    try:
        outfiles = job.run()
    except (Bam2WigError, IOError) as e:
        printer.write("Error: %s" % e)
        sys.exit(1)

    printer.write("Done.")
    return outfiles


if __name__ == "__main__":
    main()
