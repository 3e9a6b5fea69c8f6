from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Sequence, Union

import numpy as np
import pandas as pd

from .exceptions import HistogramError, PreconditionViolation
from .score_histogram import ScoreHistogram

HistogramLike = Union[ScoreHistogram, Iterable[Sequence[float]]]


def find_last_bin_above(weights: np.ndarray, threshold: float = 0.0) -> int:
    """
    Index of the highest bin whose content is strictly above `threshold`.

    Returns:
        Bin index, or -1 if no bin qualifies
    """
    above = np.flatnonzero(np.asarray(weights) > threshold)
    if len(above) == 0:
        return -1
    return int(above[-1])


@dataclass(frozen=True)
class BestCut:
    """Threshold maximizing efficiency x purity."""

    index: int
    threshold: float
    efficiency: float
    purity: float
    score: float
    background_rejection: float

    def summary(self) -> str:
        return (
            f"Suggested cut: {self.threshold:.6g} "
            f"sig: {self.efficiency * 100:.4g}%, "
            f"bkg rejection: {self.background_rejection * 100:.4g}%"
        )


@dataclass(frozen=True)
class ScanResult:
    """
    Per-candidate outcome of a cut scan.

    Candidate i accepts all entries in bins [i, N). Arrays are aligned
    and hold one entry per candidate cut.

    Attributes:
        threshold: Lower edge of bin i
        efficiency: Fraction of signal retained
        purity: Signal fraction of retained events (NaN if undefined)
        signal_tail: Signal weight in bins [i, N)
        background_tail: Background weight in bins [i, N)
        background_rejection: Fraction of background removed (NaN if no background)
    """

    threshold: np.ndarray
    efficiency: np.ndarray
    purity: np.ndarray
    signal_tail: np.ndarray
    background_tail: np.ndarray
    background_rejection: np.ndarray

    def __post_init__(self) -> None:
        for name in self.__dataclass_fields__:
            values = np.array(getattr(self, name), dtype=np.float64)
            values.setflags(write=False)
            object.__setattr__(self, name, values)

    @property
    def n_candidates(self) -> int:
        return len(self.threshold)

    @property
    def defined(self) -> np.ndarray:
        """Mask of candidates whose purity is defined."""
        return ~np.isnan(self.purity)

    @property
    def figure_of_merit(self) -> np.ndarray:
        return self.efficiency * self.purity

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "bin": np.arange(self.n_candidates),
                "cut_value": self.threshold,
                "efficiency": self.efficiency,
                "purity": self.purity,
                "eff_x_purity": self.figure_of_merit,
                "n_sig": self.signal_tail,
                "n_bkg": self.background_tail,
                "bkg_rejection": self.background_rejection,
            }
        )


class CutScanner:
    """
    Efficiency/purity scan over a classifier response.

    Given aligned signal and background score histograms, evaluates every
    "accept bins [i, N)" cut up to the last bin still holding signal and
    reports the cut maximizing efficiency x purity. Later candidates win
    ties. The scanner holds no state, so one instance can serve any number
    of (signal, background) pairs.
    """

    def __init__(self) -> None:
        self.logger = logging.getLogger("NuTauBDT.CutScanner")

    @staticmethod
    def _as_histogram(hist: HistogramLike, role: str) -> ScoreHistogram:
        if isinstance(hist, ScoreHistogram):
            return hist
        try:
            return ScoreHistogram.from_pairs(hist)
        except (TypeError, ValueError, HistogramError) as e:
            raise PreconditionViolation(f"{role} histogram is not a valid sequence of (edge, weight) pairs: {e}")

    def _check_preconditions(self, signal: ScoreHistogram, background: ScoreHistogram) -> None:
        if signal.n_bins == 0 or background.n_bins == 0:
            raise PreconditionViolation(
                f"Empty histogram: signal has {signal.n_bins} bins, "
                f"background has {background.n_bins} bins"
            )
        if signal.n_bins != background.n_bins:
            raise PreconditionViolation(
                f"Signal and background bin counts differ: "
                f"{signal.n_bins} vs {background.n_bins}"
            )
        if not np.array_equal(signal.low_edges, background.low_edges):
            raise PreconditionViolation("Signal and background histograms have different bin edges")
        if not signal.integral() > 0:
            raise PreconditionViolation("Total signal weight is zero, efficiency is undefined")

    def scan(
        self, signal_hist: HistogramLike, background_hist: HistogramLike
    ) -> tuple[ScanResult, BestCut]:
        """
        Scan all candidate cuts.

        Args:
            signal_hist: Signal-like score histogram (or (edge, weight) pairs)
            background_hist: Background-like score histogram on the same binning

        Returns:
            (ScanResult, BestCut)

        Raises:
            PreconditionViolation: Empty or misaligned histograms, or zero
                                   total signal weight
        """
        signal = self._as_histogram(signal_hist, "Signal")
        background = self._as_histogram(background_hist, "Background")
        self._check_preconditions(signal, background)

        last_non_empty = find_last_bin_above(signal.weights, 0.0)
        n_candidates = last_non_empty + 1

        # suffix sums: tail[i] = sum(weights[i:])
        sig_tail = np.cumsum(signal.weights[::-1])[::-1][:n_candidates]
        bkg_tail = np.cumsum(background.weights[::-1])[::-1][:n_candidates]

        efficiency = sig_tail / sig_tail[0]

        total = sig_tail + bkg_tail
        purity = np.full(n_candidates, np.nan)
        np.divide(sig_tail, total, out=purity, where=total > 0)

        rejection = np.full(n_candidates, np.nan)
        if bkg_tail[0] > 0:
            rejection = 1.0 - bkg_tail / bkg_tail[0]

        n_degenerate = int(np.sum(total <= 0))
        if n_degenerate:
            self.logger.debug(f"{n_degenerate} candidate(s) with empty tails excluded from best-cut search")

        result = ScanResult(
            threshold=signal.low_edges[:n_candidates],
            efficiency=efficiency,
            purity=purity,
            signal_tail=sig_tail,
            background_tail=bkg_tail,
            background_rejection=rejection,
        )
        best = self._find_best(result)

        self.logger.debug(
            f"Scanned {n_candidates} of {signal.n_bins} bins, best index {best.index}"
        )
        return result, best

    @staticmethod
    def _find_best(result: ScanResult) -> BestCut:
        product = result.figure_of_merit
        best_index = None
        best_score = -np.inf
        for i, score in enumerate(product):
            if np.isnan(score):
                continue
            if score >= best_score:
                best_score = score
                best_index = i

        if best_index is None:
            raise PreconditionViolation("No candidate cut with defined purity")

        return BestCut(
            index=best_index,
            threshold=float(result.threshold[best_index]),
            efficiency=float(result.efficiency[best_index]),
            purity=float(result.purity[best_index]),
            score=float(best_score),
            background_rejection=float(result.background_rejection[best_index]),
        )
