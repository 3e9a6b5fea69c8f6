"""
Unit tests for ClassifierTrainer.

Trains small classifiers on mock channel 4 samples and checks the
estimator mapping, the train/test split, the response range and model
persistence.
"""

from __future__ import annotations

import dataclasses
from pathlib import Path

import awkward as ak
import numpy as np
import pytest
from sklearn.ensemble import AdaBoostClassifier, BaggingClassifier
from sklearn.pipeline import Pipeline
from xgboost import XGBClassifier

from nutau_bdt.modules.classifier import (
    ClassifierTrainer,
    TrainingData,
    build_feature_matrix,
    split_indices,
)
from nutau_bdt.modules.data_handler import Candidate, ChannelSamples, DataManager, TOMLConfig
from nutau_bdt.modules.exceptions import ClassifierError, ConfigurationError
from nutau_bdt.tests.utils import assert_arrays_close, create_mock_config_dir


@pytest.fixture
def trainer(mock_config: TOMLConfig, tmp_test_dir: Path) -> ClassifierTrainer:
    return ClassifierTrainer(mock_config, mock_config.get_channel(4), tmp_test_dir / "models")


@pytest.fixture
def samples(mock_config: TOMLConfig, mock_channel4_inputs: dict[str, Path]) -> ChannelSamples:
    return DataManager(mock_config).load_channel(mock_config.get_channel(4))


@pytest.fixture
def training_data(trainer: ClassifierTrainer, samples: ChannelSamples) -> TrainingData:
    return trainer.prepare_training_data(samples)


@pytest.mark.unit
class TestSplitting:
    """Feature matrices and train/test splits."""

    def test_feature_matrix(self) -> None:
        events = ak.Array({"a": np.array([1.0, 2.0]), "b": np.array([3, 4], dtype=np.int32)})
        X = build_feature_matrix(events, ["b", "a"])
        assert X.shape == (2, 2)
        assert X.dtype == np.float64
        assert X[:, 0].tolist() == [3.0, 4.0]

    def test_feature_matrix_without_variables(self) -> None:
        events = ak.Array({"a": np.array([1.0])})
        with pytest.raises(ClassifierError):
            build_feature_matrix(events, [])

    def test_half_split(self) -> None:
        train, test = split_indices(11, 0, np.random.default_rng(1))
        assert len(train) == 5
        assert len(test) == 6
        assert sorted(np.concatenate([train, test]).tolist()) == list(range(11))

    def test_explicit_split(self) -> None:
        train, test = split_indices(100, 70, np.random.default_rng(1))
        assert len(train) == 70
        assert len(test) == 30

    def test_too_many_training_events(self) -> None:
        with pytest.raises(ClassifierError) as exc_info:
            split_indices(10, 11, np.random.default_rng(1))
        assert "only 10 are available" in str(exc_info.value)

    def test_negative_training_events(self) -> None:
        with pytest.raises(ClassifierError):
            split_indices(10, -1, np.random.default_rng(1))


@pytest.mark.unit
class TestEstimators:
    """Method names map onto the expected estimators."""

    def test_bdt_uses_channel_overrides(self, trainer: ClassifierTrainer) -> None:
        estimator = trainer.build_estimator("BDT")
        assert isinstance(estimator, AdaBoostClassifier)
        assert estimator.n_estimators == 20
        assert estimator.estimator.max_depth == 2
        assert estimator.estimator.min_samples_leaf == pytest.approx(0.15)

    def test_other_methods(self, trainer: ClassifierTrainer) -> None:
        assert isinstance(trainer.build_estimator("BDTG"), XGBClassifier)
        assert isinstance(trainer.build_estimator("BDTB"), BaggingClassifier)

        bdtd = trainer.build_estimator("BDTD")
        assert isinstance(bdtd, Pipeline)
        assert [name for name, _ in bdtd.steps] == ["decorrelate", "bdt"]

        mlp = trainer.build_estimator("MLPBNN")
        assert isinstance(mlp, Pipeline)
        # N input variables + 5 hidden nodes
        assert mlp.named_steps["mlp"].hidden_layer_sizes == (9,)
        assert mlp.named_steps["mlp"].solver == "lbfgs"
        assert mlp.named_steps["mlp"].alpha == pytest.approx(0.01)

    def test_unknown_estimator_type(self, tmp_test_dir: Path) -> None:
        config_dir = create_mock_config_dir(
            tmp_test_dir / "bad_config",
            input_dir=tmp_test_dir,
            results_dir=tmp_test_dir / "out",
            classifier_overrides={"MLP": {"estimator": "svm"}},
        )
        config = TOMLConfig(config_dir)
        trainer = ClassifierTrainer(config, config.get_channel(4), tmp_test_dir / "models")
        with pytest.raises(ConfigurationError):
            trainer.build_estimator("MLP")


@pytest.mark.unit
class TestTraining:
    """Training, evaluation and response on mock samples."""

    def test_prepare_training_data(self, training_data: TrainingData) -> None:
        n_train = len(training_data.y_train)
        n_test = len(training_data.y_test)
        assert training_data.X_train.shape == (n_train, 4)
        assert len(training_data.w_train) == n_train
        # 50/50 split of the preselected events
        assert abs(n_train - n_test) <= 2
        # events with phi = -99 never reach the training sample
        assert n_train + n_test < 900
        assert set(np.unique(training_data.y_train)) == {0, 1}

    def test_train_and_evaluate_bdt(self, trainer: ClassifierTrainer, training_data: TrainingData) -> None:
        estimator = trainer.train("BDT", training_data)
        summary = trainer.evaluate("BDT", estimator, training_data)
        assert summary.method == "BDT"
        assert summary.roc_auc > 0.7
        assert 0.0 <= summary.accuracy <= 1.0
        assert summary.n_train_signal + summary.n_train_background == len(training_data.y_train)

    def test_decision_response_range(self, trainer: ClassifierTrainer, training_data: TrainingData) -> None:
        estimator = trainer.train("BDT", training_data)
        scores = trainer.response("BDT", estimator, training_data.X_test)
        assert scores.shape == (len(training_data.X_test),)
        assert np.all((scores >= -1.0) & (scores <= 1.0))

    def test_adaboost_decision_halved(self, trainer: ClassifierTrainer, training_data: TrainingData) -> None:
        """The two-class AdaBoost decision function spans [-2, 2] and is mapped onto [-1, 1]."""
        estimator = trainer.train("BDT", training_data)
        raw = estimator.decision_function(training_data.X_test)
        assert_arrays_close(trainer.response("BDT", estimator, training_data.X_test), 0.5 * raw)

    def test_decorrelated_response_range(self, trainer: ClassifierTrainer, training_data: TrainingData) -> None:
        estimator = trainer.train("BDTD", training_data)
        scores = trainer.response("BDTD", estimator, training_data.X_test)
        assert np.all((scores >= -1.0) & (scores <= 1.0))
        assert scores.min() < 0.0 < scores.max()

    def test_probability_response_range(self, trainer: ClassifierTrainer, training_data: TrainingData) -> None:
        estimator = trainer.train("MLPBFGS", training_data)
        scores = trainer.response("MLPBFGS", estimator, training_data.X_test)
        assert np.all((scores >= -1.0) & (scores <= 1.0))

    def test_single_class_rejected(self, trainer: ClassifierTrainer, training_data: TrainingData) -> None:
        signal_only = dataclasses.replace(
            training_data,
            X_train=training_data.X_train[training_data.y_train == 1],
            w_train=training_data.w_train[training_data.y_train == 1],
            y_train=training_data.y_train[training_data.y_train == 1],
        )
        with pytest.raises(ClassifierError):
            trainer.train("BDT", signal_only)

    def test_score_events(self, trainer: ClassifierTrainer, samples: ChannelSamples, training_data: TrainingData) -> None:
        """All events are scored, including those failing the preselection."""
        estimator = trainer.train("BDT", training_data)
        events, _ = samples.signal
        assert len(trainer.score_events("BDT", estimator, events)) == len(events)


@pytest.mark.unit
class TestPersistence:
    """Saving and reloading fitted models."""

    def test_save_and_load(self, trainer: ClassifierTrainer, training_data: TrainingData) -> None:
        estimator = trainer.train("BDT", training_data)
        path = trainer.save_model("BDT", estimator)
        assert path == trainer.models_dir / "BDT.joblib"
        assert path.parent.name == "channel_4"

        loaded = trainer.load_model("BDT")
        np.testing.assert_allclose(
            trainer.response("BDT", loaded, training_data.X_test),
            trainer.response("BDT", estimator, training_data.X_test),
        )

    def test_load_missing_model(self, trainer: ClassifierTrainer) -> None:
        with pytest.raises(ClassifierError) as exc_info:
            trainer.load_model("BDTG")
        assert "Model file not found" in str(exc_info.value)

    def test_load_with_other_variables(
        self, mock_config: TOMLConfig, trainer: ClassifierTrainer, training_data: TrainingData
    ) -> None:
        trainer.save_model("BDT", trainer.train("BDT", training_data))
        channel = dataclasses.replace(trainer.channel, variables=["zdec", "kink", "p2ry"])
        other = ClassifierTrainer(mock_config, channel, trainer.models_dir.parent)
        with pytest.raises(ClassifierError):
            other.load_model("BDT")


@pytest.mark.unit
class TestCandidates:
    """Scoring of the observed candidate events."""

    def test_no_candidates(self, trainer: ClassifierTrainer, training_data: TrainingData) -> None:
        estimator = trainer.train("BDT", training_data)
        assert trainer.score_candidates("BDT", estimator) == {}

    def test_candidate_scores(
        self, mock_config: TOMLConfig, trainer: ClassifierTrainer, training_data: TrainingData
    ) -> None:
        estimator = trainer.train("BDT", training_data)
        channel = dataclasses.replace(
            trainer.channel,
            candidates=[
                Candidate("A", "golden", {"zdec": 500.0, "kink": 0.2, "p2ry": 9.0, "pt2ry": 1.0}),
                Candidate("B", "marginal", {"zdec": 200.0, "kink": 0.03, "p2ry": 1.5, "pt2ry": 0.1}),
            ],
        )
        scores = ClassifierTrainer(mock_config, channel, trainer.models_dir.parent).score_candidates(
            "BDT", estimator
        )
        assert list(scores) == ["A", "B"]
        assert all(-1.0 <= s <= 1.0 for s in scores.values())

    def test_candidate_missing_variable(
        self, mock_config: TOMLConfig, trainer: ClassifierTrainer, training_data: TrainingData
    ) -> None:
        estimator = trainer.train("BDT", training_data)
        channel = dataclasses.replace(
            trainer.channel, candidates=[Candidate("A", "golden", {"zdec": 500.0})]
        )
        with pytest.raises(ConfigurationError):
            ClassifierTrainer(mock_config, channel, trainer.models_dir.parent).score_candidates("BDT", estimator)
