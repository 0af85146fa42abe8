#!/usr/bin/env python
"""Turn `numpydoc`_-style docstrings into plain text for command-line help.

Script modules in :mod:`bamsignal.bin` use their module docstring as the
description shown by ``--help``. Before display, `reStructuredText`_ roles,
substitutions and link references are reduced to their visible text, and the
docstring is cut before its first `numpydoc`_ section heading.
"""
import re

SECTION_HEADINGS = ("Parameters", "Returns", "Yields", "Raises", "Attributes", "See Also", "See also")
"""`numpydoc`_ headings at which help text is truncated"""

ROLE_PATTERN = re.compile(r"(?P<lead>^|\s+)(?::[^:`<>\s]+)?:[^:`\s]*:`(?P<text>[^`<>]+?)(?:\s*<[^`]+>)?`", re.M)
"""Matches roles like ``:class:`Foo``` and ``:py:meth:`bar <Foo.bar>```"""

SUBSTITUTION_PATTERN = re.compile(r"\|([^|\n]+)\|")
"""Matches substitutions like ``|SignalBuffer|``"""

LINK_PATTERN = re.compile(r"`([^`<>]+?)(?:\s*<[^`]+>)?`__?")
"""Matches link references like ```BAM`_`` and ```UCSC <https://genome.ucsc.edu>`_``"""

SEPARATOR = 78 * "-"


def strip_markup(text):
    """Reduce `reStructuredText`_ markup in `text` to its visible words

    Parameters
    ----------
    text : str

    Returns
    -------
    str
    """
    text = ROLE_PATTERN.sub(r"\g<lead>\g<text>", text)
    text = SUBSTITUTION_PATTERN.sub(r"\1", text)
    return LINK_PATTERN.sub(r"\1", text)


def shorten_help(text):
    """Strip markup from a docstring and cut it before the first section heading

    Parameters
    ----------
    text : str
        Module, class or function docstring

    Returns
    -------
    str
        Help text ending in a single newline
    """
    text = strip_markup(text)
    cut = len(text)
    for heading in SECTION_HEADINGS:
        match = re.search(r"^\s*%s\s*\n\s*-{3,}" % re.escape(heading), text, re.M)
        if match is not None:
            cut = min(cut, match.start())

    return text[:cut].strip() + "\n"


def format_module_docstring(text):
    """Format a module docstring as a script description, framed by separators

    Parameters
    ----------
    text : str

    Returns
    -------
    str
    """
    return "\n%s\n\n%s\n\n%s\n" % (SEPARATOR, shorten_help(text), SEPARATOR)
