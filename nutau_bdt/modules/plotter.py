"""
Plots for the classifier response and the cut scan

Three kinds of output per channel:
    - BDTplotweighted_<ch>_<method>.pdf: expected signal/background response
      with the suggested cut and the candidate events
    - KinVar_<ch>.pdf: unit-normalized kinematic distributions with the
      candidate events marked
    - EffPur_<ch>_<method>.pdf: efficiency and purity versus cut, plus
      efficiency x purity with the best cut

Example usage:
    plotter = ScanPlotter(output_dir="output/plot")
    plotter.plot_score_distribution(channel, "BDT", sig_hist, bkg_hist, best, scores)
    plotter.plot_efficiency_purity(channel, "BDT", scan_result, best)
"""

from __future__ import annotations

import logging
from pathlib import Path

import awkward as ak
import matplotlib
import matplotlib.pyplot as plt
import mplhep as hep
import numpy as np

from .cut_scanner import BestCut, ScanResult
from .data_handler import ChannelConfig
from .score_histogram import ScoreHistogram
from .variable_config import VariableConfig

logging.getLogger("matplotlib.font_manager").setLevel(logging.ERROR)

matplotlib.rcParams["font.family"] = "sans-serif"
matplotlib.rcParams["font.sans-serif"] = ["DejaVu Sans", "Arial", "Helvetica", "sans-serif"]

plt.style.use(hep.style.ROOT)

# Override the serif fonts of the style
matplotlib.rcParams["font.family"] = "sans-serif"

CANDIDATE_COLORS = {"golden": "goldenrod", "marginal": "dimgray"}


class ScanPlotter:
    """Class for creating the response and scan plots of a channel"""

    def __init__(self, output_dir):
        """
        Initialize with output directory

        Parameters:
        - output_dir: Directory to save plots
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.logger = logging.getLogger("NuTauBDT.ScanPlotter")

    def _save(self, fig, filename: str) -> Path:
        path = self.output_dir / filename
        fig.savefig(path, dpi=150, bbox_inches="tight")
        plt.close(fig)
        self.logger.info(f"Created plot: {path}")
        return path

    @staticmethod
    def _mark_candidates(ax, positions: dict[str, float], categories: dict[str, str]) -> None:
        for name, x in positions.items():
            color = CANDIDATE_COLORS.get(categories.get(name, "golden"), "goldenrod")
            ax.axvline(x, color=color, linestyle=":", linewidth=2)
            ax.annotate(
                name,
                xy=(x, 1.0),
                xycoords=("data", "axes fraction"),
                rotation=90,
                va="top",
                ha="right",
                fontsize=10,
                color=color,
            )

    def plot_score_distribution(
        self,
        channel: ChannelConfig,
        method: str,
        signal_hist: ScoreHistogram,
        background_hist: ScoreHistogram,
        best: BestCut | None = None,
        candidate_scores: dict[str, float] | None = None,
    ) -> Path:
        """
        Plot the expected signal and background response distributions

        Parameters:
        - channel: Channel configuration (labels, candidates)
        - method: Classifier method name
        - signal_hist, background_hist: Response histograms scaled to the expected yields
        - best: Suggested cut, drawn as a dashed line
        - candidate_scores: Response of the observed candidates, keyed by name
        """
        fig, ax = plt.subplots(figsize=(10, 7))

        hep.histplot(
            background_hist.weights,
            background_hist.edges,
            ax=ax,
            histtype="fill",
            color="tab:red",
            alpha=0.5,
            label=channel.background_label,
        )
        hep.histplot(
            signal_hist.weights,
            signal_hist.edges,
            ax=ax,
            histtype="step",
            color="tab:blue",
            linewidth=2,
            label=channel.signal_label,
        )

        if best is not None:
            ax.axvline(best.threshold, color="k", linestyle="--", label=f"Suggested cut: {best.threshold:.3g}")

        if candidate_scores:
            categories = {c.name: c.category for c in channel.candidates}
            self._mark_candidates(ax, candidate_scores, categories)

        ax.set_xlabel(f"{method} response")
        ax.set_ylabel("Expected events")
        ax.set_xlim(signal_hist.edges[0], signal_hist.edges[-1])
        ax.set_ylim(bottom=0)
        ax.set_title(channel.label)
        ax.legend(loc="upper left")

        return self._save(fig, f"BDTplotweighted_{channel.number}_{method}.pdf")

    def plot_kinematics(
        self,
        channel: ChannelConfig,
        variable_config: VariableConfig,
        signal: tuple[ak.Array, np.ndarray],
        background: tuple[ak.Array, np.ndarray],
    ) -> Path:
        """
        Plot unit-normalized weighted distributions of the channel's plot variables

        Parameters:
        - channel: Channel configuration (plot variables, candidates)
        - variable_config: Titles, units and binning of the variables
        - signal, background: (events, per-event weights) of each class
        """
        names = channel.plot_variables
        ncols = 3
        nrows = int(np.ceil(len(names) / ncols))
        fig, axes = plt.subplots(nrows, ncols, figsize=(6 * ncols, 5 * nrows), squeeze=False)

        sig_events, sig_weights = signal
        bkg_events, bkg_weights = background
        categories = {c.name: c.category for c in channel.candidates}

        for ax, name in zip(axes.flat, names):
            var = variable_config.get_variable(name)
            binning = variable_config.get_binning(name, channel.number)

            for events, weights, color, label, histtype in (
                (bkg_events, bkg_weights, "tab:red", channel.background_label, "fill"),
                (sig_events, sig_weights, "tab:blue", channel.signal_label, "step"),
            ):
                hist = ScoreHistogram.from_values(
                    ak.to_numpy(events[name]).astype(np.float64),
                    weights,
                    bins=binning.bins,
                    low=binning.low,
                    high=binning.high,
                )
                if hist.integral() > 0:
                    hist = hist.normalized()
                hep.histplot(
                    hist.weights,
                    hist.edges,
                    ax=ax,
                    histtype=histtype,
                    color=color,
                    alpha=0.5 if histtype == "fill" else 1.0,
                    label=label,
                )

            positions = {c.name: float(c.values[name]) for c in channel.candidates if name in c.values}
            self._mark_candidates(ax, positions, categories)

            ax.set_xlabel(var.axis_label)
            ax.set_ylabel("Normalized")
            ax.set_xlim(binning.low, binning.high)
            ax.set_ylim(bottom=0)

        for ax in list(axes.flat)[len(names):]:
            ax.set_visible(False)
        axes.flat[0].legend(fontsize=10)
        fig.suptitle(channel.label)

        return self._save(fig, f"KinVar_{channel.number}.pdf")

    def plot_efficiency_purity(
        self, channel: ChannelConfig, method: str, result: ScanResult, best: BestCut
    ) -> Path:
        """
        Plot efficiency and purity versus cut value, with efficiency x purity below

        Parameters:
        - channel: Channel configuration
        - method: Classifier method name
        - result: Output of CutScanner.scan
        - best: Best cut from the same scan
        """
        fig, (ax_top, ax_bottom) = plt.subplots(
            2, 1, figsize=(10, 9), sharex=True, gridspec_kw={"height_ratios": [2, 1]}
        )

        ax_top.plot(result.threshold, result.efficiency, "b-", linewidth=2, label="Signal efficiency")
        ax_top.plot(result.threshold, result.purity, "r-", linewidth=2, label="Purity")
        ax_top.axvline(best.threshold, color="k", linestyle="--", label=f"Best cut: {best.threshold:.3g}")
        ax_top.set_ylabel("Efficiency / purity")
        ax_top.set_ylim(0, 1.05)
        ax_top.set_title(f"{channel.label} ({method})")
        ax_top.legend(loc="lower left")
        ax_top.grid(True, alpha=0.3)

        ax_bottom.plot(result.threshold, result.figure_of_merit, "g-", linewidth=2)
        ax_bottom.plot(best.threshold, best.score, "k*", markersize=14)
        ax_bottom.set_xlabel(f"Cut on {method} response")
        ax_bottom.set_ylabel(r"Eff. $\times$ purity")
        ax_bottom.grid(True, alpha=0.3)

        return self._save(fig, f"EffPur_{channel.number}_{method}.pdf")
