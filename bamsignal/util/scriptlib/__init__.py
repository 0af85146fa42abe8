#!/usr/bin/env python
"""Library components for writing command-line scripts

Package overview
================

    ===================================================    =========================
    **Package module**                                     **Contents**
    ---------------------------------------------------    -------------------------
    :py:mod:`~bamsignal.util.scriptlib.argparsers`          :class:`~argparse.ArgumentParser` factories for recording options
    :py:mod:`~bamsignal.util.scriptlib.help_formatters`     Utilities to reformat module docstrings for use as command-line help text
    ===================================================    =========================
"""
