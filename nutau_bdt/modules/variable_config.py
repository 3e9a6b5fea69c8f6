"""
Variable configuration manager

Handles loading and parsing the kinematic variable definitions from
variables.toml: axis titles, units, types and per-channel binning.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import tomli

from .exceptions import ConfigurationError


@dataclass(frozen=True)
class Binning:
    """Fixed-width binning on [low, high)."""

    bins: int
    low: float
    high: float

    @classmethod
    def from_dict(cls, spec: dict[str, Any], context: str = "") -> Binning:
        try:
            binning = cls(int(spec["bins"]), float(spec["low"]), float(spec["high"]))
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid binning {spec!r} {context}: {e}")
        if binning.bins <= 0 or binning.high <= binning.low:
            raise ConfigurationError(f"Invalid binning {spec!r} {context}")
        return binning


@dataclass(frozen=True)
class Variable:
    name: str
    title: str
    unit: str
    dtype: str

    @property
    def axis_label(self) -> str:
        return f"{self.title} [{self.unit}]" if self.unit else self.title


class VariableConfig:
    """Manager for variable definitions.

    Attributes:
        logger: Logger instance for this class
        config: Loaded TOML configuration dictionary
        variables: Variable definitions keyed by branch name
        spectators: Spectator definitions keyed by branch name
    """

    def __init__(self, config_path: str | Path | None = None) -> None:
        """
        Initialize variable configuration.

        Args:
            config_path: Path to variables.toml (package default if None)

        Raises:
            ConfigurationError: If configuration file not found
        """
        self.logger: logging.Logger = logging.getLogger("NuTauBDT.VariableConfig")

        if config_path is None:
            config_path = Path(__file__).resolve().parent.parent / "config" / "variables.toml"
        else:
            config_path = Path(config_path)

        if not config_path.exists():
            raise ConfigurationError(f"Variable configuration file not found: {config_path}")

        try:
            with open(config_path, "rb") as f:
                self.config: dict[str, Any] = tomli.load(f)
        except tomli.TOMLDecodeError as e:
            raise ConfigurationError(f"Error parsing TOML file {config_path}: {e}")

        self.variables: dict[str, Variable] = self._parse_group("variables")
        self.spectators: dict[str, Variable] = self._parse_group("spectators")

        self.logger.debug(f"Loaded {len(self.variables)} variables from {config_path}")

    def _parse_group(self, group: str) -> dict[str, Variable]:
        parsed = {}
        for name, spec in self.config.get(group, {}).items():
            dtype = spec.get("dtype", "F")
            if dtype not in ("F", "I"):
                raise ConfigurationError(f"Unknown dtype '{dtype}' for {group}.{name}")
            parsed[name] = Variable(
                name=name,
                title=spec.get("title", name),
                unit=spec.get("unit", ""),
                dtype=dtype,
            )
        return parsed

    def get_variable(self, name: str) -> Variable:
        if name not in self.variables:
            raise ConfigurationError(
                f"Variable '{name}' not defined. Known variables: {sorted(self.variables)}"
            )
        return self.variables[name]

    def get_binning(self, name: str, channel: int | str | None = None) -> Binning:
        """
        Binning of a variable, honouring channel-specific overrides.

        Args:
            name: Variable (branch) name
            channel: Channel number, or None for the default binning
        """
        self.get_variable(name)
        spec = self.config["variables"][name]
        overrides = spec.get("channel_binning", {})
        if channel is not None and str(channel) in overrides:
            return Binning.from_dict(overrides[str(channel)], f"for {name} (channel {channel})")
        if "binning" not in spec:
            raise ConfigurationError(f"No binning defined for variable '{name}'")
        return Binning.from_dict(spec["binning"], f"for {name}")

    def validate_variables(self, names: list[str]) -> None:
        """Raise ConfigurationError for any undefined variable."""
        unknown = [n for n in names if n not in self.variables]
        if unknown:
            raise ConfigurationError(
                f"Undefined variables {unknown}. Known variables: {sorted(self.variables)}"
            )
