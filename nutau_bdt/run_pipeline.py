#!/usr/bin/env python3
"""
Pipeline for the nu_tau candidate classification of one detector channel

Phases:
  1. Configuration validation (channel, methods, output directories)
  2. Loading of the signal/background samples with their event weights
  3. Classifier training and evaluation (or loading of saved models)
  4. Scoring of all events and of the observed candidates
  5. Efficiency/purity scan over the expected response distributions
  6. Plots and tables

Usage:
  nutau-bdt --channel 1 [--methods BDT,MLP] [--skip-training] [--no-plots]
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np

from .modules.classifier import ClassifierTrainer, EvaluationSummary
from .modules.cut_scanner import BestCut, CutScanner, ScanResult
from .modules.data_handler import ChannelConfig, ChannelSamples, DataManager, TOMLConfig
from .modules.exceptions import AnalysisError
from .modules.plotter import ScanPlotter
from .modules.score_histogram import ScoreHistogram
from .utils.logging_config import setup_logging, suppress_warnings


@dataclass
class MethodResult:
    """Outcome of one classifier method in one channel."""

    method: str
    signal_hist: ScoreHistogram
    background_hist: ScoreHistogram
    scan: ScanResult
    best: BestCut
    candidate_scores: dict[str, float] = field(default_factory=dict)
    evaluation: EvaluationSummary | None = None
    table_path: Path | None = None
    plots: list[Path] = field(default_factory=list)


@dataclass
class PipelineResult:
    channel: ChannelConfig
    methods: dict[str, MethodResult] = field(default_factory=dict)
    plots: list[Path] = field(default_factory=list)


class PipelineManager:
    """
    Runs the full chain for one channel: load, train, score, scan, plot.
    """

    def __init__(
        self,
        config_dir: str | Path | None = None,
        input_dir: str | Path | None = None,
        output_dir: str | Path | None = None,
    ) -> None:
        """
        Initialize pipeline manager.

        Args:
            config_dir: Configuration directory (package defaults if None)
            input_dir: Overrides the input directory of data.toml
            output_dir: Overrides the output directories of data.toml
        """
        self.logger = logging.getLogger("NuTauBDT.Pipeline")
        self.config: TOMLConfig = TOMLConfig(config_dir)
        self.config.override_paths(
            None if input_dir is None else str(input_dir),
            None if output_dir is None else str(output_dir),
        )
        self._setup_output_dirs()

        self.data_manager = DataManager(self.config)
        self.scanner = CutScanner()
        self.plotter = ScanPlotter(self.config.paths["output"]["plots_dir"])

    def _setup_output_dirs(self) -> None:
        """Create all output directories"""
        for category in ["plots", "tables", "models"]:
            dir_path = Path(self.config.paths["output"][f"{category}_dir"])
            dir_path.mkdir(exist_ok=True, parents=True)

    def score_histograms(
        self, channel: ChannelConfig, trainer: ClassifierTrainer, method: str, estimator, samples: ChannelSamples
    ) -> tuple[ScoreHistogram, ScoreHistogram]:
        """
        Response histograms of all signal and background events, scaled to
        the expected yields of the channel.
        """
        binning = channel.score_binning
        hists = []
        for (events, weights), expected in (
            (samples.signal, channel.n_expected_signal),
            (samples.background, channel.n_expected_background),
        ):
            scores = trainer.score_events(method, estimator, events)
            hist = ScoreHistogram.from_values(
                scores, weights, bins=binning.bins, low=binning.low, high=binning.high, clip=True
            )
            hists.append(hist.scaled_to(expected))
        return hists[0], hists[1]

    def save_scan_table(self, channel: ChannelConfig, method: str, scan: ScanResult) -> Path:
        tables_dir = Path(self.config.paths["output"]["tables_dir"])
        path = tables_dir / f"cut_scan_{channel.number}_{method}.csv"
        scan.to_dataframe().to_csv(path, index=False)
        self.logger.info(f"Saved scan table: {path}")
        return path

    def run_method(
        self,
        channel: ChannelConfig,
        method: str,
        samples: ChannelSamples,
        trainer: ClassifierTrainer,
        skip_training: bool = False,
        make_plots: bool = True,
    ) -> MethodResult:
        """Train (or load) one method, then scan and plot its response."""
        evaluation = None
        if skip_training:
            estimator = trainer.load_model(method)
            self.logger.info(f"Loaded saved {method} model")
        else:
            data = trainer.prepare_training_data(samples)
            estimator = trainer.train(method, data)
            evaluation = trainer.evaluate(method, estimator, data)
            trainer.save_model(method, estimator)

        candidate_scores = trainer.score_candidates(method, estimator)
        signal_hist, background_hist = self.score_histograms(channel, trainer, method, estimator, samples)

        scan, best = self.scanner.scan(signal_hist, background_hist)
        self.logger.info(f"[{method}] {best.summary()}")
        self.logger.info(
            f"[{method}] Purity at suggested cut: {best.purity * 100:.4g}% "
            f"(eff x purity = {best.score:.4g})"
        )

        result = MethodResult(
            method=method,
            signal_hist=signal_hist,
            background_hist=background_hist,
            scan=scan,
            best=best,
            candidate_scores=candidate_scores,
            evaluation=evaluation,
            table_path=self.save_scan_table(channel, method, scan),
        )

        if make_plots:
            result.plots.append(
                self.plotter.plot_score_distribution(
                    channel, method, signal_hist, background_hist, best, candidate_scores
                )
            )
            result.plots.append(self.plotter.plot_efficiency_purity(channel, method, scan, best))
        return result

    def run(
        self,
        channel_number: int,
        methods: str | list[str] | None = None,
        skip_training: bool = False,
        make_plots: bool = True,
    ) -> PipelineResult:
        """
        Execute the pipeline for one channel

        Args:
            channel_number: Detector channel (1 = tau->1h, 2 = tau->mu, 3 = tau->3h, 4 = tau->e)
            methods: Comma-separated or list of method names (configured defaults if empty)
            skip_training: Load previously saved models instead of training
            make_plots: Write the PDF plots

        Returns:
            PipelineResult with one MethodResult per method
        """
        channel = self.config.get_channel(channel_number)
        method_names = self.config.resolve_methods(methods)

        self.logger.info("=" * 60)
        self.logger.info(f"Channel {channel.number}: {channel.name}")
        self.logger.info(f"Methods: {', '.join(method_names)}")
        self.logger.info(f"Training variables: {', '.join(channel.variables)}")
        self.logger.info("=" * 60)

        samples = self.data_manager.load_channel(channel)
        trainer = ClassifierTrainer(self.config, channel, self.config.paths["output"]["models_dir"])

        result = PipelineResult(channel=channel)
        if make_plots:
            result.plots.append(
                self.plotter.plot_kinematics(
                    channel, self.config.variable_config, samples.signal, samples.background
                )
            )

        for method in method_names:
            result.methods[method] = self.run_method(
                channel, method, samples, trainer, skip_training=skip_training, make_plots=make_plots
            )

        self._log_summary(result)
        return result

    def _log_summary(self, result: PipelineResult) -> None:
        self.logger.info("=" * 60)
        self.logger.info(f"SUMMARY - channel {result.channel.number} ({result.channel.name})")
        for method, res in result.methods.items():
            auc = res.evaluation.roc_auc if res.evaluation is not None else np.nan
            self.logger.info(
                f"  {method:8s} cut {res.best.threshold:8.4g}  eff {res.best.efficiency:6.3f}  "
                f"purity {res.best.purity:6.3f}  ROC AUC {auc:6.3f}"
            )
        self.logger.info("=" * 60)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="nu_tau candidate classification and efficiency/purity cut scan"
    )
    parser.add_argument(
        "--channel",
        type=int,
        required=True,
        help="Decay channel number from channels.toml (1 = tau->1h, 2 = tau->mu, 3 = tau->3h, 4 = tau->e)",
    )
    parser.add_argument(
        "--methods",
        type=str,
        default="",
        help="Comma-separated list of methods (default: from config/classifiers.toml)",
    )
    parser.add_argument("--config-dir", type=str, default=None, help="Configuration directory")
    parser.add_argument("--input-dir", type=str, default=None, help="Directory with the input ROOT files")
    parser.add_argument("--output-dir", type=str, default=None, help="Base directory for all outputs")
    parser.add_argument(
        "--skip-training", action="store_true", help="Load saved models instead of training"
    )
    parser.add_argument("--no-plots", action="store_true", help="Do not write PDF plots")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point with argument parsing"""
    args = build_parser().parse_args(argv)

    logger = setup_logging(args.verbose)
    # Suppress warnings by default (can be overridden with ANALYSIS_WARNINGS=on)
    suppress_warnings()

    try:
        pipeline = PipelineManager(
            config_dir=args.config_dir, input_dir=args.input_dir, output_dir=args.output_dir
        )
        pipeline.run(
            args.channel,
            methods=args.methods,
            skip_training=args.skip_training,
            make_plots=not args.no_plots,
        )
    except AnalysisError as e:
        logger.error(f"Analysis failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
