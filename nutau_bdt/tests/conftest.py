"""
Global pytest fixtures and configuration for the test suite.

Provides reusable fixtures for testing pipeline components without
duplicating setup code across test modules.
"""

from __future__ import annotations

import shutil
import tempfile
from pathlib import Path
from typing import Generator

import matplotlib

matplotlib.use("Agg")

import pytest

from nutau_bdt.modules.data_handler import TOMLConfig
from nutau_bdt.tests.utils.mock_data_generator import create_mock_channel_inputs, create_mock_config_dir


@pytest.fixture
def tmp_test_dir() -> Generator[Path, None, None]:
    """
    Create a temporary directory for test operations.

    Automatically cleaned up after test completion.

    Yields:
        Path to temporary directory
    """
    tmp_dir = Path(tempfile.mkdtemp(prefix="nutau_test_"))
    try:
        yield tmp_dir
    finally:
        if tmp_dir.exists():
            shutil.rmtree(tmp_dir)


@pytest.fixture
def tmp_output_dir(tmp_test_dir: Path) -> Path:
    output_dir = tmp_test_dir / "output"
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


@pytest.fixture
def mock_config_dir(tmp_test_dir: Path) -> Path:
    """
    Package configuration with paths redirected into the temporary directory
    and a fast BDT (few trees, 50/50 split) for channel 4.
    """
    return create_mock_config_dir(
        tmp_test_dir / "config",
        input_dir=tmp_test_dir / "input",
        results_dir=tmp_test_dir / "output",
        channel_overrides={
            "4": {
                "bdt": {"n_estimators": 20},
                "training": {"n_train_signal": 0, "n_train_background": 0, "seed": 7},
            }
        },
    )


@pytest.fixture
def mock_config(mock_config_dir: Path) -> TOMLConfig:
    return TOMLConfig(mock_config_dir)


@pytest.fixture
def mock_channel4_inputs(tmp_test_dir: Path, mock_config_dir: Path) -> dict[str, Path]:
    """Mock ROOT files of every channel 4 sample."""
    return create_mock_channel_inputs(
        tmp_test_dir / "input", channel=4, config_dir=mock_config_dir, n_events=300
    )
