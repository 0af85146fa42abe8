#!/usr/bin/env python
"""Argument parser factories for signal-track scripts, and functions that turn
parsed arguments into run settings and helper objects.


Arguments are grouped into the following sets:

    ===========================================================   ======================================
    **Parameter/argument set**                                    **Parser building class**
    -----------------------------------------------------------   --------------------------------------
    Generic parameters (e.g. for error reporting, logging)        :class:`BaseParser`

    Input files, recording mode, filtering, weighting,            :class:`RecordingParser`
    normalization, shift estimation and output
    ===========================================================   ======================================


Example
-------
Use the parsers as parents of a script's own parser::

    >>> import argparse
    >>> from bamsignal.util.scriptlib.argparsers import BaseParser, RecordingParser

    >>> bp = BaseParser()
    >>> rp = RecordingParser()
    >>> parser = argparse.ArgumentParser(parents=[bp.get_parser(), rp.get_parser()])
    >>> args = parser.parse_args(["--in", "sample.bam", "--out", "sample", "--span"])

    >>> bp.get_base_ops_from_args(args)
    >>> config = rp.get_config_from_args(args)


See Also
--------
:py:mod:`argparse`
    Python documentation on argument parsing
"""
import argparse

from bamsignal.genomics.blacklist import BlackList
from bamsignal.genomics.recording import Mode, RecordingConfig, WIG_FORMATS
from bamsignal.genomics.shift import ShiftEstimator
from bamsignal.util.services.exceptions import ArgumentWarning, ConfigurationError, DataWarning, \
                                               FileFormatWarning, filterwarnings, warn

#===============================================================================
# INDEX: Constants used in parsers below
#===============================================================================

ESTIMATE = -1
"""Value of `--shift` given without a number, meaning the shift is estimated"""

_MODE_TITLE = "position mode (one required)"
_MODE_DESCRIPTION = "Choose which part of each alignment or fragment is recorded:"

_MODE_HELP = [
    (Mode.START, "Record the 5' position of each read"),
    (Mode.MID, "Record the midpoint of each read or fragment"),
    (Mode.SPAN, "Record every position covered by each read or fragment"),
    (Mode.EXTEND, "Record `--extval` positions from the 5' end of each read"),
    (Mode.CENTER_SPAN, "Record a window of `--extval` positions centered on each read or fragment"),
    (Mode.COVERAGE, "Record raw per-base depth. Alignment filters do not apply."),
    (Mode.SMART_PAIRED, "Record the union of the blocks aligned by both mates of each fragment"),
    (Mode.PAIRED_ENDPOINTS, "Record both outer ends of each fragment"),
]

_INPUT_TITLE = "input options"
_PAIRED_TITLE = "paired-end options"
_FILTER_TITLE = "alignment filtering options"
_WEIGHT_TITLE = "weighting & normalization options"
_SHIFT_TITLE = "shift options (single-end)"
_OUTPUT_TITLE = "output options"

#===============================================================================
# INDEX: Base class for parsers
#===============================================================================


class Parser(object):
    """Builds a group of related arguments, which scripts use as parent parsers

    Parameters
    ----------
    groupname : str, optional
        If given, arguments are put in an argument group rather than the main one

    prefix : str, optional
        Prepended to every long option name and destination (Default: `""`)

    disabled : list, optional
        Option names, without dashes, to leave out
    """

    def __init__(self, groupname=None, prefix="", disabled=None, **kwargs):
        self.prefix = prefix
        self.disabled = [] if disabled is None else disabled
        self.groupname = groupname

        self.arguments = []

    def get_parser(self, parser=None, groupname=None, arglist=None, title=None, description=None, **kwargs):
        """Add `arglist` (or `self.arguments`) to `parser`, creating either if needed

        `arglist` holds `(name, add_argument_kwargs)` tuples. Arguments go into
        an argument group titled `title` when a group name is set.

        Returns
        -------
        :class:`argparse.ArgumentParser`
        """
        if groupname is None:
            groupname = self.groupname

        if parser is None:
            if groupname is None:
                parser = argparse.ArgumentParser(description=description, add_help=False, **kwargs)
            else:
                parser = argparse.ArgumentParser(add_help=False, **kwargs)

        addto = parser
        if groupname is not None:
            addto = parser.add_argument_group(title=title, description=description)

        arglist = self.arguments if arglist is None else arglist
        for arg_name, arg_opts in filter(lambda x: x[0] not in self.disabled, arglist):
            addto.add_argument("--%s%s" % (self.prefix, arg_name), **arg_opts)

        return parser


#===============================================================================
# INDEX: Parser for signal generation
#===============================================================================


class RecordingParser(Parser):
    """Parser for everything needed to turn alignments into a signal track

    See :class:`Parser` for parameters
    """

    def __init__(self, groupname="recording_options", prefix="", disabled=None):
        Parser.__init__(self, groupname=groupname, prefix=prefix, disabled=disabled)

        self.input_args = [
            ("in"               , dict(type=str,
                                       nargs="+",
                                       required=True,
                                       dest="%sinfiles" % prefix,
                                       metavar="BAM",
                                       help="One or more sorted, indexed BAM files. Each is one sample.")),
            ("chrskip"          , dict(type=str,
                                       default=None,
                                       metavar="REGEX",
                                       help="Skip chromosomes whose names match this regular expression, "+
                                            "e.g. 'chrM|random'")),
            ("blacklist"        , dict(type=str,
                                       default=None,
                                       metavar="FILE",
                                       help="BED, GFF or GTF file of regions whose alignments are skipped")),
            ]

        self.paired_args = [
            ("pe"               , dict(action="store_true",
                                       default=False,
                                       help="Record properly paired fragments instead of single reads")),
            ("min_insert"       , dict(type=int,
                                       default=30,
                                       metavar="N",
                                       help="Minimum fragment length (Default: %(default)s)")),
            ("max_insert"       , dict(type=int,
                                       default=600,
                                       metavar="N",
                                       help="Maximum fragment length (Default: %(default)s)")),
            ]

        self.filter_args = [
            ("qual"             , dict(type=int,
                                       default=0,
                                       metavar="N",
                                       help="Minimum mapping quality (Default: %(default)s)")),
            ("nosecondary"      , dict(action="store_true",
                                       default=False,
                                       help="Skip secondary alignments")),
            ("nodup"            , dict(action="store_true",
                                       default=False,
                                       help="Skip alignments marked as duplicates")),
            ("nosupplementary"  , dict(action="store_true",
                                       default=False,
                                       help="Skip supplementary alignments")),
            ("splice"           , dict(action="store_true",
                                       default=False,
                                       help="Record each aligned block of spliced alignments separately")),
            ("max_intron"       , dict(type=int,
                                       default=50000,
                                       metavar="N",
                                       help="Skip spliced alignments with a longer gap. 0 for no limit. "+
                                            "(Default: %(default)s)")),
            ]

        self.weight_args = [
            ("fraction"         , dict(action="store_true",
                                       default=False,
                                       help="Weight multi-mapping alignments by 1/N, using the NH tag")),
            ("splfrac"          , dict(action="store_true",
                                       default=False,
                                       help="Divide the weight of spliced alignments among their blocks. "+
                                            "Requires `--splice`")),
            ("rpm"              , dict(action="store_true",
                                       default=False,
                                       help="Normalize to reads per million")),
            ("scale"            , dict(type=float,
                                       nargs="+",
                                       default=None,
                                       metavar="X",
                                       help="Multiply values by one factor, or one factor per sample")),
            ("mean"             , dict(action="store_true",
                                       default=False,
                                       help="Average samples instead of summing them")),
            ("chrnorm"          , dict(type=float,
                                       default=None,
                                       metavar="F",
                                       help="Multiply values on chromosomes matching `--chrapply` by F")),
            ("chrapply"         , dict(type=str,
                                       default=None,
                                       metavar="REGEX",
                                       help="Chromosomes scaled by `--chrnorm`")),
            ]

        self.shift_args = [
            ("shift"            , dict(type=int,
                                       nargs="?",
                                       const=ESTIMATE,
                                       default=0,
                                       metavar="N",
                                       help="Move positions N bp toward the 3' end. Without N, estimate it "+
                                            "from the first sample. (Default: %(default)s)")),
            ("extval"           , dict(type=int,
                                       default=0,
                                       metavar="N",
                                       help="Extension length for `--extend` and `--cspan`. If 0 for single-end "+
                                            "reads, twice the estimated shift is used. (Default: %(default)s)")),
            ("shift_chroms"     , dict(type=int,
                                       default=4,
                                       metavar="N",
                                       help="Number of chromosomes sampled to estimate shift (Default: %(default)s)")),
            ("min_r"            , dict(type=float,
                                       default=0.5,
                                       metavar="R",
                                       help="Minimum correlation for a region to count toward shift (Default: %(default)s)")),
            ("zmin"             , dict(type=float,
                                       default=3,
                                       metavar="Z",
                                       help="Minimum depth of sampled regions, in standard deviations "+
                                            "above the mean (Default: %(default)s)")),
            ("zmax"             , dict(type=float,
                                       default=10,
                                       metavar="Z",
                                       help="Maximum depth of sampled regions, in standard deviations "+
                                            "above the mean (Default: %(default)s)")),
            ("model"            , dict(action="store_true",
                                       default=False,
                                       help="Write shift model tables and plot")),
            ]

        self.output_args = [
            ("out"              , dict(type=str,
                                       required=True,
                                       metavar="NAME",
                                       help="Output file name or base name")),
            ("strand"           , dict(action="store_true",
                                       default=False,
                                       help="Write forward and reverse strands to separate files")),
            ("flip"             , dict(action="store_true",
                                       default=False,
                                       help="Swap forward and reverse output file names")),
            ("bin"              , dict(type=int,
                                       default=1,
                                       metavar="N",
                                       help="Bin size in bp (Default: %(default)s)")),
            ("format"           , dict(choices=WIG_FORMATS,
                                       default=None,
                                       help="Output format. Default depends on mode.")),
            ("decimals"         , dict(type=int,
                                       default=None,
                                       metavar="N",
                                       help="Decimal places written (Default: 4 for fractional values, "+
                                            "otherwise integers)")),
            ("nozero"           , dict(action="store_true",
                                       default=False,
                                       help="Omit zero-valued bedGraph intervals")),
            ("track"            , dict(type=str,
                                       default=None,
                                       metavar="NAME",
                                       help="Write a track line with this name")),
            ("gz"               , dict(action="store_true",
                                       default=False,
                                       help="Compress output with gzip")),
            ("bw"               , dict(action="store_true",
                                       default=False,
                                       help="Convert output to bigWig")),
            ("bwapp"            , dict(type=str,
                                       default=None,
                                       metavar="PATH",
                                       help="Path to wigToBigWig or bedGraphToBigWig (Default: search PATH)")),
            ("cpu"              , dict(type=int,
                                       default=2,
                                       metavar="N",
                                       help="Number of worker processes (Default: %(default)s)")),
            ]

    def get_parser(self, title=None, description=None, **kwargs):
        """Return an :py:class:`~argparse.ArgumentParser` with all recording options

        Parameters
        ----------
        title, description : str, optional
            Ignored. Each option group carries its own title.

        kwargs : keyword arguments
            Additional arguments to pass to :meth:`Parser.get_parser`

        Returns
        -------
        :class:`argparse.ArgumentParser`
        """
        parser = Parser.get_parser(self, arglist=self.input_args, title=_INPUT_TITLE, **kwargs)

        mode_group = parser.add_argument_group(title=_MODE_TITLE, description=_MODE_DESCRIPTION)
        modes = mode_group.add_mutually_exclusive_group(required=True)
        for mode, help_text in _MODE_HELP:
            if mode.value in self.disabled:
                continue
            modes.add_argument(
                "--%s%s" % (self.prefix, mode.value),
                action="store_const",
                const=mode.value,
                dest="%smode" % self.prefix,
                help=help_text
            )

        for arglist, title in (
            (self.paired_args, _PAIRED_TITLE),
            (self.filter_args, _FILTER_TITLE),
            (self.weight_args, _WEIGHT_TITLE),
            (self.shift_args, _SHIFT_TITLE),
            (self.output_args, _OUTPUT_TITLE),
        ):
            Parser.get_parser(self, parser=parser, arglist=arglist, title=title)

        if "verbose_stats" not in self.disabled:
            parser.add_argument(
                "-V",
                "--%sverbose_stats" % self.prefix,
                action="store_true",
                default=False,
                help="Report alignment counts and skip tallies for each chromosome"
            )

        return parser

    def get_config_from_args(self, args):
        """Build a |RecordingConfig| from arguments parsed by :meth:`get_parser`

        Paired-end fragments have no single 5' end, so `--start` with `--pe`
        is recorded as `--mid`, with an |ArgumentWarning|.

        Parameters
        ----------
        args : :py:class:`argparse.Namespace`

        Returns
        -------
        |RecordingConfig|

        Raises
        ------
        ConfigurationError
            If arguments are invalid or mutually exclusive
        """
        args = PrefixNamespaceWrapper(args, self.prefix)
        mode = Mode(args.mode)
        if args.pe and mode == Mode.START:
            warn("Paired-end fragments have no single 5' end. Recording fragment midpoints instead.", ArgumentWarning)
            mode = Mode.MID

        if (args.chrnorm is None) != (args.chrapply is None):
            raise ConfigurationError("`--chrnorm` and `--chrapply` must be given together.")

        return RecordingConfig(
            mode,
            paired=args.pe,
            strand_split=args.strand,
            flip=args.flip,
            shift_bp=0 if args.shift == ESTIMATE else args.shift,
            estimate_shift=args.shift == ESTIMATE,
            extend_bp=args.extval,
            bin_size=args.bin,
            splice=args.splice,
            max_intron_bp=args.max_intron,
            min_insert=args.min_insert,
            max_insert=args.max_insert,
            min_mapq=args.qual,
            keep_secondary=not args.nosecondary,
            keep_duplicate=not args.nodup,
            keep_supplementary=not args.nosupplementary,
            fraction=args.fraction,
            splice_fraction=args.splfrac,
            rpm=args.rpm,
            scale=args.scale,
            mean=args.mean,
            chrom_scale_pattern=args.chrapply,
            chrom_scale_factor=1.0 if args.chrnorm is None else args.chrnorm,
            wig_format=args.format,
            decimals=args.decimals,
            suppress_zero=args.nozero,
        )

    def get_estimator_from_args(self, args, printer=None):
        """Build a |ShiftEstimator| from arguments parsed by :meth:`get_parser`

        Raises
        ------
        ConfigurationError
            If estimation parameters are out of range
        """
        args = PrefixNamespaceWrapper(args, self.prefix)
        try:
            return ShiftEstimator(
                chrom_count=args.shift_chroms,
                min_r=args.min_r,
                zmin=args.zmin,
                zmax=args.zmax,
                min_mapq=args.qual,
                processes=args.cpu,
                printer=printer,
            )
        except ValueError as e:
            raise ConfigurationError(str(e))

    def get_blacklist_from_args(self, args, printer=None):
        """Read the blacklist named by `--blacklist`, if any

        Returns
        -------
        |BlackList| or None
        """
        args = PrefixNamespaceWrapper(args, self.prefix)
        if args.blacklist is None:
            return None

        blacklist = BlackList.from_file(args.blacklist)
        if printer is not None:
            printer.write("Read %s blacklisted intervals from %s" % (len(blacklist), args.blacklist))
        return blacklist


#===============================================================================
# INDEX: Parser for generic command-line options (e.g. warning control)
#===============================================================================


class BaseParser(Parser):
    """Parser for basic options, such as warnings and logging

    See :class:`Parser` for parameters
    """

    def __init__(self, groupname="base_options", prefix="", disabled=None):
        Parser.__init__(self, groupname=groupname, prefix=prefix, disabled=disabled)
        self.arguments = []

    def get_parser(self, title=None, description=None):
        """Return a parser holding the `-q` and `-v` warning options"""
        p = Parser.get_parser(self)
        g = p.add_argument_group(title="warning/error options")

        g.add_argument("-q", "--quiet", dest="warnlevel", action="store_const", const=-1,
                       help="Suppress all warning messages. Cannot use with '-v'.")
        g.add_argument("-v", "--verbose", dest="warnlevel", action="count",
                       help="Increase verbosity. With '-v', show every warning. With '-vv', turn warnings "+
                            "into exceptions. Cannot use with '-q'. (Default: show each type of warning once)")
        p.set_defaults(warnlevel=0)

        return p

    def get_base_ops_from_args(self, args):
        """Install warning filters for the verbosity level in `args`

        Returns
        -------
        str
            Warning filter action installed
        """
        args = PrefixNamespaceWrapper(args, self.prefix)
        warnlevel = args.warnlevel
        actions = ["ignore", "onceperfamily", "always", "error"]

        if warnlevel >= len(actions) - 1:
            warnlevel = len(actions) - 2
        action = actions[warnlevel + 1]

        for type_, msg in BAM2WIG_WARNINGS:
            filterwarnings(action, message=msg, category=type_)

        return action


BAM2WIG_WARNINGS = [

    # argument handling
    (ArgumentWarning, "Paired-end fragments have no single 5' end"),

    # input files
    (FileFormatWarning, "Skipping empty blacklist interval"),

    # normalization
    (DataWarning, "Sample .* has no alignments"),

    # bigWig conversion
    (ArgumentWarning, "Could not find wigToBigWig"),
    (DataWarning, "Could not run"),
    (DataWarning, ".* exited with status"),

]


#===============================================================================
# INDEX: Namespace helpers
#===============================================================================


class PrefixNamespaceWrapper(object):
    """Wrap an :py:class:`~argparse.Namespace` so that attributes can be
    fetched without their prefix

    Parameters
    ----------
    namespace : :py:class:`~argparse.Namespace`
        Result of calling :py:meth:`argparse.ArgumentParser.parse_args`

    prefix : str
        Prefix prepended to attribute names before they are fetched
    """

    def __init__(self, namespace, prefix):
        self.namespace = namespace
        self.prefix = prefix

    def __getattr__(self, k):
        return getattr(self.namespace, "%s%s" % (self.prefix, k))
