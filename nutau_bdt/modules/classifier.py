"""
Classifier training, evaluation and scoring

The multivariate methods are delegated to scikit-learn and xgboost; this
module only maps the configured method names onto estimators, prepares the
weighted training/test samples and turns model outputs into a response on
the [-1, 1] axis used by the score histograms.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import awkward as ak
import joblib
import numpy as np
from sklearn.decomposition import PCA
from sklearn.ensemble import AdaBoostClassifier, BaggingClassifier
from sklearn.metrics import accuracy_score, roc_auc_score
from sklearn.neural_network import MLPClassifier
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import MinMaxScaler
from sklearn.tree import DecisionTreeClassifier
from sklearn.utils.validation import has_fit_parameter
from xgboost import XGBClassifier

from .data_handler import ChannelConfig, ChannelSamples, DataManager, TOMLConfig
from .exceptions import ClassifierError, ConfigurationError


def build_feature_matrix(events: ak.Array, variables: list[str]) -> np.ndarray:
    """Stack the given branches into an (n_events, n_variables) float array."""
    columns = [ak.to_numpy(events[v]).astype(np.float64) for v in variables]
    if not columns:
        raise ClassifierError("No training variables given")
    return np.column_stack(columns)


def split_indices(n_events: int, n_train: int, rng: np.random.Generator) -> tuple[np.ndarray, np.ndarray]:
    """
    Random train/test split of n_events.

    n_train = 0 puts half of the events (rounded down) in the training set.
    """
    if n_train < 0:
        raise ClassifierError(f"Negative number of training events requested: {n_train}")
    if n_train == 0:
        n_train = n_events // 2
    if n_train > n_events:
        raise ClassifierError(
            f"Requested {n_train} training events but only {n_events} are available"
        )
    order = rng.permutation(n_events)
    return np.sort(order[:n_train]), np.sort(order[n_train:])


@dataclass
class TrainingData:
    X_train: np.ndarray
    y_train: np.ndarray
    w_train: np.ndarray
    X_test: np.ndarray
    y_test: np.ndarray
    w_test: np.ndarray


@dataclass
class EvaluationSummary:
    method: str
    roc_auc: float
    accuracy: float
    n_train_signal: int
    n_train_background: int
    n_test_signal: int
    n_test_background: int


class ClassifierTrainer:
    """
    Train and apply the configured classifier methods of one channel.

    Attributes:
        config: TOMLConfig with the method definitions
        channel: ChannelConfig of the channel being processed
        models_dir: Where fitted models are persisted
    """

    def __init__(self, config: TOMLConfig, channel: ChannelConfig, models_dir: str | Path | None = None):
        self.config = config
        self.channel = channel
        if models_dir is None:
            models_dir = config.paths["output"]["models_dir"]
        self.models_dir = Path(models_dir) / f"channel_{channel.number}"
        self.logger = logging.getLogger("NuTauBDT.ClassifierTrainer")

    def method_settings(self, method: str) -> dict[str, Any]:
        """Method settings with the channel's BDT overrides applied."""
        settings = self.config.get_method_config(method)
        if method == "BDT":
            settings.update(self.channel.bdt)
        return settings

    def build_estimator(self, method: str):
        """Instantiate the estimator for a configured method name."""
        settings = self.method_settings(method)
        seed = int(self.channel.training.get("seed", 42))
        kind = settings.get("estimator")

        if kind == "adaboost":
            tree = DecisionTreeClassifier(
                max_depth=settings.get("max_depth", 3),
                min_samples_leaf=settings.get("min_node_fraction", 0.05),
            )
            bdt = AdaBoostClassifier(
                estimator=tree,
                n_estimators=settings.get("n_estimators", 400),
                learning_rate=settings.get("learning_rate", 0.5),
                random_state=seed,
            )
            if settings.get("decorrelate", False):
                return Pipeline([("decorrelate", PCA(whiten=True)), ("bdt", bdt)])
            return bdt

        if kind == "xgboost":
            return XGBClassifier(
                n_estimators=settings.get("n_estimators", 1000),
                max_depth=settings.get("max_depth", 2),
                learning_rate=settings.get("learning_rate", 0.1),
                subsample=settings.get("subsample", 0.5),
                eval_metric="logloss",
                random_state=seed,
                n_jobs=-1,
            )

        if kind == "bagging":
            tree = DecisionTreeClassifier(min_samples_leaf=settings.get("min_node_fraction", 0.05))
            return BaggingClassifier(
                estimator=tree,
                n_estimators=settings.get("n_estimators", 400),
                random_state=seed,
            )

        if kind == "mlp":
            hidden = len(self.channel.variables) + int(settings.get("extra_hidden_nodes", 5))
            mlp = MLPClassifier(
                hidden_layer_sizes=(hidden,),
                activation="tanh",
                solver=settings.get("solver", "adam"),
                alpha=settings.get("alpha", 0.0),
                max_iter=settings.get("max_iter", 600),
                random_state=seed,
            )
            return Pipeline([("normalize", MinMaxScaler(feature_range=(-1, 1))), ("mlp", mlp)])

        raise ConfigurationError(f"Method '{method}' has unknown estimator type '{kind}'")

    def prepare_training_data(self, samples: ChannelSamples) -> TrainingData:
        """
        Preselect events and split each class into training and test sets.

        Raises:
            ClassifierError: If a class has no events after preselection
        """
        cuts = self.config.get_preselection()
        training = self.channel.training
        rng = np.random.default_rng(int(training.get("seed", 42)))

        parts = {}
        for label, (events, weights), n_train in (
            (1, samples.signal, int(training.get("n_train_signal", 0))),
            (0, samples.background, int(training.get("n_train_background", 0))),
        ):
            mask = DataManager.preselection_mask(events, cuts)
            X = build_feature_matrix(events[mask], self.channel.variables)
            w = weights[mask]
            if len(X) == 0:
                name = "signal" if label else "background"
                raise ClassifierError(f"No {name} events left after preselection")
            train_idx, test_idx = split_indices(len(X), n_train, rng)
            parts[label] = (X[train_idx], w[train_idx], X[test_idx], w[test_idx])

        X_train = np.concatenate([parts[1][0], parts[0][0]])
        y_train = np.concatenate([np.ones(len(parts[1][0])), np.zeros(len(parts[0][0]))]).astype(int)
        w_train = np.concatenate([parts[1][1], parts[0][1]])
        X_test = np.concatenate([parts[1][2], parts[0][2]])
        y_test = np.concatenate([np.ones(len(parts[1][2])), np.zeros(len(parts[0][2]))]).astype(int)
        w_test = np.concatenate([parts[1][3], parts[0][3]])

        self.logger.info(
            f"Training sample: {int(y_train.sum())} signal / {int((y_train == 0).sum())} background, "
            f"test sample: {int(y_test.sum())} signal / {int((y_test == 0).sum())} background"
        )
        return TrainingData(X_train, y_train, w_train, X_test, y_test, w_test)

    @staticmethod
    def _fit_params(estimator, weights: np.ndarray) -> dict[str, np.ndarray]:
        if isinstance(estimator, Pipeline):
            name, step = estimator.steps[-1]
            if has_fit_parameter(step, "sample_weight"):
                return {f"{name}__sample_weight": weights}
            return {}
        if has_fit_parameter(estimator, "sample_weight"):
            return {"sample_weight": weights}
        return {}

    def train(self, method: str, data: TrainingData):
        """Fit a fresh estimator for `method` on the training split."""
        if len(np.unique(data.y_train)) < 2:
            raise ClassifierError(f"Training sample for {method} must contain both classes")

        # unit mean weight; relative signal/background normalization is kept
        weights = data.w_train * (len(data.w_train) / np.sum(data.w_train))

        estimator = self.build_estimator(method)
        fit_params = self._fit_params(estimator, weights)
        if not fit_params:
            self.logger.warning(f"{method} does not support event weights, training unweighted")

        self.logger.info(f"Training {method} on {len(data.X_train)} events")
        estimator.fit(data.X_train, data.y_train, **fit_params)
        return estimator

    def response(self, method: str, estimator, X: np.ndarray) -> np.ndarray:
        """Classifier response of each row of X on the [-1, 1] axis."""
        settings = self.method_settings(method)
        kind = settings.get("response", "decision")
        if kind == "decision":
            scores = np.asarray(estimator.decision_function(X), dtype=np.float64)
            if settings.get("estimator") == "adaboost":
                # two-class SAMME sums +-w over both columns, i.e. [-2, 2]
                scores = 0.5 * scores
            return scores
        if kind == "probability":
            return 2.0 * np.asarray(estimator.predict_proba(X)[:, 1], dtype=np.float64) - 1.0
        raise ConfigurationError(f"Unknown response type '{kind}' for method {method}")

    def evaluate(self, method: str, estimator, data: TrainingData) -> EvaluationSummary:
        """Weighted ROC AUC and accuracy on the test split (NaN where undefined)."""
        roc_auc = float("nan")
        accuracy = float("nan")
        if len(data.X_test) > 0:
            accuracy = float(
                accuracy_score(data.y_test, estimator.predict(data.X_test), sample_weight=data.w_test)
            )
            if len(np.unique(data.y_test)) == 2:
                scores = self.response(method, estimator, data.X_test)
                roc_auc = float(roc_auc_score(data.y_test, scores, sample_weight=data.w_test))

        summary = EvaluationSummary(
            method=method,
            roc_auc=roc_auc,
            accuracy=accuracy,
            n_train_signal=int(data.y_train.sum()),
            n_train_background=int((data.y_train == 0).sum()),
            n_test_signal=int(data.y_test.sum()),
            n_test_background=int((data.y_test == 0).sum()),
        )
        self.logger.info(f"{method}: ROC AUC = {roc_auc:.4f}, accuracy = {accuracy:.4f}")
        return summary

    def model_path(self, method: str) -> Path:
        return self.models_dir / f"{method}.joblib"

    def save_model(self, method: str, estimator) -> Path:
        self.models_dir.mkdir(parents=True, exist_ok=True)
        path = self.model_path(method)
        joblib.dump(
            {"method": method, "variables": list(self.channel.variables), "estimator": estimator},
            path,
        )
        self.logger.info(f"Wrote model file: {path}")
        return path

    def load_model(self, method: str):
        """
        Load a persisted estimator.

        Raises:
            ClassifierError: If the file is missing or was trained on other variables
        """
        path = self.model_path(method)
        if not path.exists():
            raise ClassifierError(f"Model file not found: {path} (run without --skip-training first)")
        payload = joblib.load(path)
        if payload.get("variables") != list(self.channel.variables):
            raise ClassifierError(
                f"Model {path} was trained on {payload.get('variables')}, "
                f"channel {self.channel.number} uses {self.channel.variables}"
            )
        return payload["estimator"]

    def score_events(self, method: str, estimator, events: ak.Array) -> np.ndarray:
        return self.response(method, estimator, build_feature_matrix(events, self.channel.variables))

    def score_candidates(self, method: str, estimator) -> dict[str, float]:
        """Response of every configured candidate event, keyed by name."""
        if not self.channel.candidates:
            return {}
        rows = []
        for cand in self.channel.candidates:
            missing = [v for v in self.channel.variables if v not in cand.values]
            if missing:
                raise ConfigurationError(f"Candidate '{cand.name}' has no value for {missing}")
            rows.append([float(cand.values[v]) for v in self.channel.variables])

        scores = self.response(method, estimator, np.asarray(rows, dtype=np.float64))
        result = {cand.name: float(s) for cand, s in zip(self.channel.candidates, scores)}
        self.logger.info(
            f"{method} response: " + "\t".join(f"{name} {value:.4f}" for name, value in result.items())
        )
        return result
