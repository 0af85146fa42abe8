#!/usr/bin/env python
"""Setup script for bamsignal.

Command-line scripts are detected automatically: every module in
`bamsignal/bin` that defines a `main` function is installed as a console
script of the same name (see :func:`get_scripts`).
"""
__author__ = "Joshua Griffin Dunn"

import os
from setuptools import setup, find_packages

bamsignal_version = "0.1.0"


#===============================================================================
# Package metadata
#===============================================================================

with open("README.rst") as f:
    long_description = f.read()

packages = find_packages()

install_requires = [
    "numpy>=1.9.4",
    "pysam>=0.15.0",
    "pandas>=0.17.0",
    "matplotlib>=1.4.0",
    "termcolor",
]

tests_require = [
    "pytest",
]


def get_scripts():
    """Detect command-line scripts automatically

    Returns
    -------
    list
        list of strings describing command-line scripts
    """
    binscripts = [
        X.replace(".py", "") for X in filter(
            lambda x: x.endswith(".py") and "__init__" not in x,
            os.listdir(os.path.join("bamsignal", "bin")),
        )
    ]
    return ["%s = bamsignal.bin.%s:main" % (X, X) for X in binscripts]


#===============================================================================
# Program body
#===============================================================================

setup(

    name             = "bamsignal",
    version          = bamsignal_version,
    author           = "Joshua Griffin Dunn",
    author_email     = "joshua.g.dunn@gmail.com",
    maintainer       = "Joshua Griffin Dunn",
    maintainer_email = "joshua.g.dunn@gmail.com",
    long_description =  long_description,
    long_description_content_type = "text/x-rst",

    description      = "Convert BAM alignments into wiggle, bedGraph and BigWig signal tracks",
    license          = "BSD 3-Clause",
    keywords         = "chip-seq atac-seq rna-seq sequencing genomics wiggle bedgraph bigwig coverage",
    platforms        = "OS Independent",

    classifiers      = [
         'Development Status :: 4 - Beta',
         'Programming Language :: Python :: 3',

         'Topic :: Scientific/Engineering :: Bio-Informatics',

         'Intended Audience :: Science/Research',
         'Intended Audience :: Developers',

         'License :: OSI Approved :: BSD License',
         'Operating System :: POSIX',
         'Natural Language :: English',
    ],

    zip_safe = False,
    packages = packages,

    package_dir = {
        "bamsignal"  : "bamsignal",
    },

    entry_points = {
        "console_scripts" : get_scripts()
    },

    python_requires  = ">=3.6",
    install_requires = install_requires,
    extras_require   = {
        "test" : tests_require,
    },

) # yapf: disable
