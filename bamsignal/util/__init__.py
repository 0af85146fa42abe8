#!/usr/bin/env python
"""Miscellaneous, general utilities useful for scripting

Package overview
================

    ======================================   ==========================================================================
    **Subpackages**                          **Contents**
    --------------------------------------   --------------------------------------------------------------------------
    :py:obj:`~bamsignal.util.io`             File openers, stream filters, packed numeric encodings and `BigWig`_ conversion
    :py:obj:`~bamsignal.util.scriptlib`      Tools for writing command-line scripts that use :data:`bamsignal`
    :py:obj:`~bamsignal.util.services`       Exceptions, warnings and running statistics
    ======================================   ==========================================================================
"""
