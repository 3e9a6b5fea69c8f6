"""
Test utilities and helper functions.

Provides mock ROOT inputs and result assertions shared across the
test suite.
"""

from .mock_data_generator import (
    create_mock_channel_inputs,
    create_mock_config_dir,
    create_mock_sample_file,
    generate_mock_kinematics,
    generate_score_histogram_pair,
)
from .test_helpers import (
    assert_arrays_close,
    assert_dir_exists,
    assert_file_exists,
    assert_raises_with_message,
    assert_valid_scan,
    assert_value_in_range,
    count_files_in_dir,
)

__all__ = [
    "assert_arrays_close",
    "assert_dir_exists",
    "assert_file_exists",
    "assert_raises_with_message",
    "assert_valid_scan",
    "assert_value_in_range",
    "count_files_in_dir",
    "create_mock_channel_inputs",
    "create_mock_config_dir",
    "create_mock_sample_file",
    "generate_mock_kinematics",
    "generate_score_histogram_pair",
]
