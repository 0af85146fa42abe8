#!/usr/bin/env python
"""Plots of intermediate results written alongside signal tracks.

    :func:`shift_model_plot`
        Strand profiles around high-coverage windows, before and after
        shifting, with the correlation at each tested shift in a second panel
"""
import numpy
import matplotlib.pyplot as plt
from matplotlib.colors import to_rgba


def _mix(color, toward, amount):
    """Move `color` a fraction `amount` of the way toward white (`toward=1`) or
    black (`toward=0`), keeping its alpha"""
    rgba = numpy.array(to_rgba(color))
    rgba[:3] += amount * (toward - rgba[:3])
    return tuple(rgba)


def shift_model_plot(model, correlations, shift, title=None, colors=("#1f77b4", "#d62728", "#444444")):
    """Plot a shift model

    Parameters
    ----------
    model : :class:`pandas.DataFrame`
        Table with columns `Start`, `F`, `R` and `Shift`, as from
        :meth:`~bamsignal.genomics.shift.ShiftResult.model_table`

    correlations : :class:`pandas.DataFrame`
        Table with columns `Shift` and `R`, as from
        :meth:`~bamsignal.genomics.shift.ShiftResult.correlation_table`

    shift : int
        Final shift estimate, in bp

    title : str or None, optional
        Figure title

    colors : tuple, optional
        Colors for the forward, reverse and shifted profiles

    Returns
    -------
    :class:`matplotlib.figure.Figure`
        Figure

    list of :class:`matplotlib.axes.Axes`
        Profile axes and correlation axes
    """
    fig = plt.figure(figsize=(8, 7))
    ax1 = fig.add_subplot(2, 1, 1)
    ax2 = fig.add_subplot(2, 1, 2)

    ax1.plot(model["Start"], model["F"], color=colors[0], label="Forward")
    ax1.plot(model["Start"], model["R"], color=colors[1], label="Reverse")
    ax1.fill_between(model["Start"], model["Shift"], color=_mix(colors[2], 1.0, 0.75))
    ax1.plot(model["Start"], model["Shift"], color=colors[2], linestyle="--", label="Shifted")
    ax1.set_xlabel("Position relative to peak (bp)")
    ax1.set_ylabel("Mean 5' ends per 10 bp")
    ax1.legend(loc="upper right", frameon=False)

    ax2.plot(correlations["Shift"], correlations["R"], color=_mix(colors[0], 0.0, 0.3))
    ax2.axvline(shift, color=colors[2], linestyle=":")
    ax2.set_xlabel("Shift (bp)")
    ax2.set_ylabel("Mean Pearson r")
    ymax = numpy.nanmax(correlations["R"]) if len(correlations) > 0 else 1
    if numpy.isfinite(ymax):
        ax2.set_ylim(min(0, numpy.nanmin(correlations["R"])), max(ymax * 1.1, 0.1))

    if title is not None:
        fig.suptitle(title)

    return fig, [ax1, ax2]
