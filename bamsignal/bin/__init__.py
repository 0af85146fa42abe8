#!/usr/bin/env python
"""Command-line scripts

    =========================   =============================================================================
    **Script**                  **Purpose**
    -------------------------   -----------------------------------------------------------------------------
    |bam2wig|                   Create `wiggle`_, `bedGraph`_ or `BigWig`_ tracks from one or more
                                `BAM`_ files, after choosing which positions of each read or fragment
                                to record, and optionally shifting, weighting and normalizing them
    =========================   =============================================================================
"""
