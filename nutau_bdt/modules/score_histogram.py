"""
Weighted score histograms

A ScoreHistogram is the binned, weighted distribution of a classifier
response (or of any kinematic variable) that feeds the cut scan and the
plots. Instances are read-only once built.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

import numpy as np

from .exceptions import HistogramError


@dataclass(frozen=True)
class ScoreHistogram:
    """
    Ordered bins of a weighted frequency distribution.

    Attributes:
        low_edges: Lower edge of each bin (strictly increasing)
        weights: Weighted count of each bin
        high_edge: Upper edge of the last bin (None when built from pairs)
    """

    low_edges: np.ndarray
    weights: np.ndarray
    high_edge: float | None = None

    def __post_init__(self) -> None:
        low_edges = np.array(self.low_edges, dtype=np.float64).reshape(-1)
        weights = np.array(self.weights, dtype=np.float64).reshape(-1)

        if len(low_edges) != len(weights):
            raise HistogramError(
                f"Bin edges and weights differ in length: "
                f"{len(low_edges)} edges vs {len(weights)} weights"
            )
        if len(low_edges) > 1 and np.any(np.diff(low_edges) <= 0):
            raise HistogramError("Bin edges must be strictly increasing")
        if self.high_edge is not None and len(low_edges) > 0 and self.high_edge <= low_edges[-1]:
            raise HistogramError(
                f"Upper edge {self.high_edge} must lie above the last lower edge {low_edges[-1]}"
            )

        low_edges.setflags(write=False)
        weights.setflags(write=False)
        object.__setattr__(self, "low_edges", low_edges)
        object.__setattr__(self, "weights", weights)

    @classmethod
    def from_pairs(cls, pairs: Iterable[Sequence[float]]) -> ScoreHistogram:
        """Build from a sequence of (low_edge, weight) pairs."""
        pairs = [tuple(p) for p in pairs]
        if not pairs:
            return cls(np.empty(0), np.empty(0))
        low_edges, weights = zip(*pairs)
        return cls(np.asarray(low_edges), np.asarray(weights))

    @classmethod
    def from_values(
        cls,
        values: np.ndarray,
        weights: np.ndarray | None = None,
        bins: int = 50,
        low: float = 0.0,
        high: float = 1.0,
        clip: bool = False,
    ) -> ScoreHistogram:
        """
        Fill a fixed-width histogram from per-event values.

        Args:
            values: Per-event values to histogram
            weights: Per-event weights (unit weights if None)
            bins: Number of bins
            low: Lower edge of the first bin
            high: Upper edge of the last bin
            clip: Fold out-of-range values into the first/last bin instead
                  of dropping them

        Returns:
            ScoreHistogram over [low, high)
        """
        if bins <= 0 or high <= low:
            raise HistogramError(f"Invalid binning: {bins} bins on [{low}, {high}]")

        values = np.asarray(values, dtype=np.float64)
        if weights is None:
            weights = np.ones_like(values)
        weights = np.asarray(weights, dtype=np.float64)
        if values.shape != weights.shape:
            raise HistogramError(
                f"Values and weights differ in shape: {values.shape} vs {weights.shape}"
            )

        if clip:
            # last bin of np.histogram is closed, so `high` itself lands in it
            values = np.clip(values, low, high)

        counts, edges = np.histogram(values, bins=bins, range=(low, high), weights=weights)
        return cls(edges[:-1], counts, float(edges[-1]))

    @property
    def n_bins(self) -> int:
        return len(self.weights)

    @property
    def edges(self) -> np.ndarray:
        """All N+1 bin edges; the last one is only known when high_edge is set."""
        if self.high_edge is None:
            raise HistogramError("Upper edge unknown for histogram built from pairs")
        return np.append(self.low_edges, self.high_edge)

    def integral(self) -> float:
        return float(np.sum(self.weights))

    def pairs(self) -> list[tuple[float, float]]:
        return list(zip(self.low_edges.tolist(), self.weights.tolist()))

    def scaled_to(self, total: float) -> ScoreHistogram:
        """
        Rescale so that the integral equals `total`.

        Raises:
            HistogramError: If the histogram is empty
        """
        integral = self.integral()
        if integral <= 0:
            raise HistogramError("Cannot rescale a histogram with zero integral")
        return ScoreHistogram(self.low_edges, self.weights * (total / integral), self.high_edge)

    def normalized(self) -> ScoreHistogram:
        """Unit-area copy, as used for shape comparisons."""
        return self.scaled_to(1.0)

    def same_binning(self, other: ScoreHistogram) -> bool:
        return self.n_bins == other.n_bins and np.array_equal(self.low_edges, other.low_edges)
