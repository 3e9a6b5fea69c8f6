"""
Configuration and sample loading

TOMLConfig gathers the TOML configuration files; DataManager reads the
signal and background trees of a channel with uproot and attaches the
per-event weights.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import awkward as ak
import numpy as np
import tomli
import uproot
from tqdm import tqdm

from ..utils.logging_config import get_tqdm_kwargs
from .exceptions import BranchMissingError, ConfigurationError, DataLoadError
from .variable_config import Binning, VariableConfig

DEFAULT_CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"

SIGNAL_ROLES = ("signal_dis", "signal_qe")
BACKGROUND_ROLES = ("background_1", "background_2")


@dataclass(frozen=True)
class Candidate:
    """Observed candidate event overlaid on the distributions."""

    name: str
    category: str
    values: dict[str, float]


@dataclass(frozen=True)
class ChannelConfig:
    """Everything the pipeline needs to know about one detector channel."""

    number: int
    name: str
    label: str
    signal_label: str
    background_label: str
    n_expected_signal: float
    n_expected_background: float
    tau_dis_fraction: float
    charm_fraction: float
    variables: list[str]
    plot_variables: list[str]
    score_binning: Binning
    samples: dict[str, str]
    training: dict[str, Any] = field(default_factory=dict)
    bdt: dict[str, Any] = field(default_factory=dict)
    candidates: list[Candidate] = field(default_factory=list)

    def sample_fraction(self, role: str) -> float:
        """Mixing fraction of a sample within its class."""
        fractions = {
            "signal_dis": self.tau_dis_fraction,
            "signal_qe": 1.0 - self.tau_dis_fraction,
            "background_1": self.charm_fraction,
            "background_2": 1.0 - self.charm_fraction,
        }
        if role not in fractions:
            raise ConfigurationError(f"Unknown sample role: {role}")
        return fractions[role]

    @property
    def roles(self) -> list[str]:
        return [r for r in SIGNAL_ROLES + BACKGROUND_ROLES if r in self.samples]


class TOMLConfig:
    """
    Load and manage all TOML configuration files

    - channels.toml: Detector channels (samples, yields, variables, candidates)
    - variables.toml: Variable titles, units and binning
    - classifiers.toml: Recognized classifier methods and their settings
    - data.toml: File paths, tree names, preselection and outputs
    """

    REQUIRED_FILES = ("channels.toml", "classifiers.toml", "data.toml", "variables.toml")

    def __init__(self, config_dir: str | Path | None = None):
        self.config_dir = Path(config_dir) if config_dir is not None else DEFAULT_CONFIG_DIR
        if not self.config_dir.is_dir():
            raise ConfigurationError(f"Configuration directory not found: {self.config_dir}")

        self.channels: dict[str, Any] = self._load_toml("channels.toml").get("channels", {})
        self.classifiers: dict[str, Any] = self._load_toml("classifiers.toml")
        self.data: dict[str, Any] = self._load_toml("data.toml")
        self.variable_config = VariableConfig(self.config_dir / "variables.toml")

        if not self.channels:
            raise ConfigurationError(f"No channels defined in {self.config_dir / 'channels.toml'}")
        for section in ("input", "output"):
            if section not in self.data:
                raise ConfigurationError(f"Missing required section [{section}] in data.toml")

        self.paths = {
            "input": self.data["input"]["base_path"],
            "output": dict(self.data["output"]),
        }

    def _load_toml(self, filename: str) -> dict:
        """
        Load TOML configuration file with proper error handling

        Raises:
            ConfigurationError: If file not found or parsing fails
        """
        config_path = self.config_dir / filename
        try:
            with open(config_path, "rb") as f:
                return tomli.load(f)
        except FileNotFoundError:
            raise ConfigurationError(
                f"Configuration file not found: {config_path}\n"
                f"Please ensure all config files are present in {self.config_dir}"
            )
        except tomli.TOMLDecodeError as e:
            raise ConfigurationError(f"Error parsing TOML file {config_path}: {e}")

    def override_paths(self, input_dir: str | None = None, output_dir: str | None = None) -> None:
        """Point input and/or all outputs somewhere else (command line overrides)."""
        if input_dir is not None:
            self.paths["input"] = str(input_dir)
        if output_dir is not None:
            base = Path(output_dir)
            self.paths["output"] = {
                "base_dir": str(base),
                "plots_dir": str(base / "plot"),
                "tables_dir": str(base / "tables"),
                "models_dir": str(base / "models"),
            }

    def available_channels(self) -> list[int]:
        return sorted(int(k) for k in self.channels)

    def get_channel(self, channel: int | str) -> ChannelConfig:
        """
        Build the ChannelConfig of a channel number.

        Raises:
            ConfigurationError: If the channel is unknown or incomplete
        """
        key = str(channel)
        if key not in self.channels:
            raise ConfigurationError(
                f"Unknown channel {channel}. Choose among: {self.available_channels()}"
            )
        spec = self.channels[key]
        required = [
            "name", "n_expected_signal", "n_expected_background", "tau_dis_fraction",
            "charm_fraction", "variables", "score_binning", "samples",
        ]
        missing = [r for r in required if r not in spec]
        if missing:
            raise ConfigurationError(f"Channel {channel} is missing required keys: {missing}")
        for role in ("signal_dis", "signal_qe", "background_1"):
            if role not in spec["samples"]:
                raise ConfigurationError(f"Channel {channel} defines no '{role}' sample")

        variables = list(spec["variables"])
        plot_variables = list(spec.get("plot_variables", variables))
        self.variable_config.validate_variables(variables + plot_variables)

        candidates = [
            Candidate(c["name"], c.get("category", "golden"), dict(c.get("values", {})))
            for c in spec.get("candidates", [])
        ]

        return ChannelConfig(
            number=int(key),
            name=spec["name"],
            label=spec.get("label", spec["name"]),
            signal_label=spec.get("signal_label", "signal"),
            background_label=spec.get("background_label", "background"),
            n_expected_signal=float(spec["n_expected_signal"]),
            n_expected_background=float(spec["n_expected_background"]),
            tau_dis_fraction=float(spec["tau_dis_fraction"]),
            charm_fraction=float(spec["charm_fraction"]),
            variables=variables,
            plot_variables=plot_variables,
            score_binning=Binning.from_dict(spec["score_binning"], f"for channel {channel} score"),
            samples=dict(spec["samples"]),
            training=dict(spec.get("training", {})),
            bdt=dict(spec.get("bdt", {})),
            candidates=candidates,
        )

    def known_methods(self) -> list[str]:
        return sorted(self.classifiers.get("methods", {}))

    def resolve_methods(self, method_list: str | list[str] | None = None) -> list[str]:
        """
        Turn a comma-separated method list into validated method names.

        An empty list selects the configured default methods.
        """
        if method_list is None or method_list == "" or method_list == []:
            names = list(self.classifiers.get("default_methods", ["BDT"]))
        elif isinstance(method_list, str):
            names = [m.strip() for m in method_list.split(",") if m.strip()]
        else:
            names = list(method_list)

        known = self.known_methods()
        for name in names:
            if name not in known:
                raise ConfigurationError(
                    f'Method "{name}" not known under this name. '
                    f"Choose among the following: {' '.join(known)}"
                )
        return names

    def get_method_config(self, method: str) -> dict[str, Any]:
        self.resolve_methods([method])
        return dict(self.classifiers["methods"][method])

    def get_preselection(self) -> list[dict[str, Any]]:
        return list(self.data.get("preselection", []))


@dataclass
class Sample:
    """One input tree with its normalization."""

    role: str
    path: Path
    events: ak.Array
    sample_weight: float
    weights: np.ndarray

    @property
    def is_signal(self) -> bool:
        return self.role in SIGNAL_ROLES


@dataclass
class ChannelSamples:
    """Signal and background events of a channel with per-event weights."""

    channel: ChannelConfig
    samples: list[Sample]

    def _join(self, signal: bool) -> tuple[ak.Array, np.ndarray]:
        chosen = [s for s in self.samples if s.is_signal == signal]
        if not chosen:
            raise DataLoadError(
                f"No {'signal' if signal else 'background'} samples for channel {self.channel.number}"
            )
        events = ak.concatenate([s.events for s in chosen], axis=0)
        weights = np.concatenate([s.weights for s in chosen])
        return events, weights

    @property
    def signal(self) -> tuple[ak.Array, np.ndarray]:
        return self._join(True)

    @property
    def background(self) -> tuple[ak.Array, np.ndarray]:
        return self._join(False)


class DataManager:
    """Load and weight the ROOT samples of a channel"""

    def __init__(self, config: TOMLConfig):
        self.config = config
        self.input_path = Path(config.paths["input"])
        self.trees: dict[str, str] = config.data["input"].get("trees", {})
        self.norm_histogram: str = config.data["input"].get("normalization_histogram", "h89_MINBIAS_TFD")
        self.weight_branch: str = config.data["input"].get("weight_branch", "OscillationP")
        self.spectators: list[str] = list(config.data["input"].get("spectators", []))
        self.logger = logging.getLogger("NuTauBDT.DataManager")

    def sample_path(self, channel: ChannelConfig, role: str) -> Path:
        return self.input_path / channel.samples[role]

    def required_branches(self, channel: ChannelConfig) -> list[str]:
        """Variables, plot variables, spectators and preselection branches, without duplicates."""
        branches: list[str] = []
        wanted = (
            channel.variables
            + channel.plot_variables
            + self.spectators
            + [self.weight_branch]
            + [cut["branch"] for cut in self.config.get_preselection()]
        )
        for name in wanted:
            if name not in branches:
                branches.append(name)
        return branches

    def normalization_integral(self, file_path: Path) -> float:
        """
        Sum of in-range bin contents of the normalization histogram.

        Raises:
            DataLoadError: If the histogram is missing or empty
        """
        with uproot.open(file_path) as f:
            if self.norm_histogram not in f:
                raise DataLoadError(
                    f"Normalization histogram '{self.norm_histogram}' not found in {file_path}"
                )
            integral = float(np.sum(f[self.norm_histogram].values()))
        if integral <= 0:
            raise DataLoadError(
                f"Normalization histogram '{self.norm_histogram}' in {file_path} is empty"
            )
        return integral

    def load_tree(self, file_path: Path, tree_name: str, branches: list[str]) -> ak.Array:
        """
        Read the requested branches of one tree.

        Raises:
            DataLoadError: If the file or tree does not exist
            BranchMissingError: If a requested branch is absent
        """
        if not file_path.exists():
            raise DataLoadError(
                f"Sample file not found: {file_path}\n"
                f"Expected location: {self.input_path}\n"
                f"Please check the input directory in config/data.toml or --input-dir"
            )
        with uproot.open(file_path) as f:
            if tree_name not in f:
                raise DataLoadError(f"Tree '{tree_name}' not found in {file_path}")
            tree = f[tree_name]
            available = set(tree.keys())
            for branch in branches:
                if branch not in available:
                    raise BranchMissingError(branch, str(file_path))
            return tree.arrays(branches, library="ak")

    def load_sample(self, channel: ChannelConfig, role: str) -> Sample:
        """Load one sample and compute its event weights."""
        if role not in self.trees:
            raise ConfigurationError(f"No tree name configured for sample role '{role}'")
        path = self.sample_path(channel, role)
        events = self.load_tree(path, self.trees[role], self.required_branches(channel))

        sample_weight = channel.sample_fraction(role) / self.normalization_integral(path)
        weights = ak.to_numpy(events[self.weight_branch]).astype(np.float64) * sample_weight

        self.logger.info(
            f"Loaded {len(events)} events for {role} from {path.name} "
            f"(sample weight {sample_weight:.4g})"
        )
        return Sample(role, path, events, sample_weight, weights)

    def load_channel(self, channel: ChannelConfig) -> ChannelSamples:
        samples = []
        for role in tqdm(channel.roles, **get_tqdm_kwargs(desc=f"Loading channel {channel.number}")):
            samples.append(self.load_sample(channel, role))

        for s in samples:
            self.logger.debug(f"{s.role}: sum of weights {np.sum(s.weights):.4g}")
        return ChannelSamples(channel, samples)

    @staticmethod
    def preselection_mask(events: ak.Array, cuts: list[dict[str, Any]]) -> np.ndarray:
        """
        Boolean mask of events passing all preselection cuts.

        Raises:
            ConfigurationError: For an unknown cut type
            BranchMissingError: If a cut branch is absent
        """
        mask = np.ones(len(events), dtype=bool)
        for cut in cuts:
            branch = cut["branch"]
            if branch not in events.fields:
                raise BranchMissingError(branch)
            values = ak.to_numpy(events[branch])
            cut_type = cut["cut_type"]
            cut_val = cut["value"]
            if cut_type == "greater":
                mask &= values > cut_val
            elif cut_type == "less":
                mask &= values < cut_val
            elif cut_type == "equal":
                mask &= values == cut_val
            elif cut_type == "not_equal":
                mask &= values != cut_val
            else:
                raise ConfigurationError(f"Unknown cut type: {cut_type}")
        return mask

    def apply_preselection(
        self, events: ak.Array, weights: np.ndarray, cuts: list[dict[str, Any]] | None = None
    ) -> tuple[ak.Array, np.ndarray]:
        """Keep events (and their weights) passing the configured preselection."""
        if cuts is None:
            cuts = self.config.get_preselection()
        mask = self.preselection_mask(events, cuts)
        self.logger.debug(f"Preselection: {int(mask.sum())}/{len(mask)} events pass")
        return events[mask], weights[mask]
