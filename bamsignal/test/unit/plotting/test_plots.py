#!/usr/bin/env python
"""Test cases for :py:mod:`bamsignal.plotting.plots`"""
import unittest

import numpy
import pandas as pd
import pytest

from bamsignal.plotting import shift_model_plot
from bamsignal.plotting.plots import _mix

import matplotlib.pyplot as plt


@pytest.mark.unit
class TestShiftModelPlot(unittest.TestCase):

    def test_axes_and_limits(self):
        model = pd.DataFrame({
            "Start": numpy.arange(-20, 21) * 10,
            "F": numpy.linspace(0, 1, 41),
            "R": numpy.linspace(1, 0, 41),
            "Shift": numpy.ones(41),
        })
        correlations = pd.DataFrame({"Shift": numpy.arange(51) * 10, "R": numpy.linspace(-0.2, 0.8, 51)})
        fig, axes = shift_model_plot(model, correlations, 80, title="sample")

        self.assertEqual(len(axes), 2)
        self.assertEqual(len(axes[0].get_lines()), 3)
        low, high = axes[1].get_ylim()
        self.assertAlmostEqual(low, -0.2)
        self.assertAlmostEqual(high, 0.88)
        plt.close(fig)

    def test_undefined_correlations(self):
        model = pd.DataFrame({"Start": [0], "F": [0.0], "R": [0.0], "Shift": [0.0]})
        correlations = pd.DataFrame({"Shift": [0, 10], "R": [numpy.nan, numpy.nan]})
        fig, _ = shift_model_plot(model, correlations, 0)
        plt.close(fig)

    def test_mix(self):
        self.assertEqual(_mix("#000000", 1.0, 0.5), (0.5, 0.5, 0.5, 1.0))
        self.assertEqual(_mix("#ffffff", 0.0, 0.25), (0.75, 0.75, 0.75, 1.0))
