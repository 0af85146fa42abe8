#!/usr/bin/env python
"""Diagnostic figures written alongside signal tracks. Figures are drawn with
the non-interactive `agg` backend, so they can be written on machines without
a display.

    :func:`~bamsignal.plotting.plots.shift_model_plot`
        Strand profiles and correlations behind a shift estimate
"""
import matplotlib
matplotlib.use("agg")

from bamsignal.plotting.plots import shift_model_plot
