"""
Logging, warning and progress-bar control for the nu_tau pipeline

Environment variables:
    ANALYSIS_WARNINGS  on/off/error/default  overrides suppress_warnings(level)
    ANALYSIS_PROGRESS  on/off                shows or hides tqdm progress bars

Usage:
    from nutau_bdt.utils.logging_config import setup_logging, suppress_warnings
    logger = setup_logging(verbose=False)
    suppress_warnings()
"""

import logging
import os
import warnings
from typing import Literal

import numpy as np

LOGGER_NAME = "NuTauBDT"

WarningLevel = Literal["off", "error", "default", "all"]

_ENV_ALIASES = {
    "on": "all", "yes": "all", "true": "all", "1": "all",
    "off": "off", "no": "off", "false": "off", "0": "off",
    "error": "error", "default": "default",
}

# Noise from the classifier and I/O libraries: MLPs stopping at max_iter,
# xgboost parameter notices, awkward/uproot deprecations.
_NOISY_MODULES = ("awkward.*", "uproot.*", "sklearn.neural_network.*", "sklearn.ensemble.*", "xgboost.*")


def setup_logging(verbose: bool = False) -> logging.Logger:
    """Configure the root handler once and return the package logger."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    for noisy in ("matplotlib", "PIL"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    return logging.getLogger(LOGGER_NAME)


def _resolve_level(level: WarningLevel) -> WarningLevel:
    env_level = os.environ.get("ANALYSIS_WARNINGS", "").lower()
    return _ENV_ALIASES.get(env_level, level)


def suppress_warnings(level: WarningLevel = "off") -> WarningLevel:
    """
    Set the Python warning filters for a pipeline run.

    Args:
        level: 'off' hides everything, 'error' turns warnings into errors,
               'default' keeps warnings from our own code only, 'all' shows
               everything including numpy floating-point warnings

    Returns:
        The level actually applied (ANALYSIS_WARNINGS wins over the argument)
    """
    level = _resolve_level(level)

    if level == "off":
        warnings.filterwarnings("ignore")
        np.seterr(all="ignore")
    elif level == "all":
        warnings.filterwarnings("default")
        np.seterr(all="warn")
    else:
        warnings.filterwarnings(level)
        warnings.filterwarnings("ignore", category=DeprecationWarning)
        warnings.filterwarnings("ignore", category=FutureWarning)
        for module in _NOISY_MODULES:
            warnings.filterwarnings("ignore", module=module)

    return level


def enable_progress_bars() -> bool:
    return os.environ.get("ANALYSIS_PROGRESS", "on").lower() in ("on", "yes", "true", "1")


def get_tqdm_kwargs(desc: str = "", **kwargs) -> dict:
    """Common tqdm settings; extra keyword arguments override them."""
    options = {
        "desc": desc,
        "unit": "sample",
        "ncols": 80,
        "leave": False,
        "disable": not enable_progress_bars(),
    }
    options.update(kwargs)
    return options
