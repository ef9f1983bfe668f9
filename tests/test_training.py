"""Tests de la tete softmax, de l'entrainement par epoques et du top-k."""

import numpy as np
import pytest

from soundcommands.config import TrainingConfig
from soundcommands.training import HeadTrainer, SoftmaxHead, softmax, top_k_classes


def make_blobs(seed: int = 0, per_class: int = 10):
    rng = np.random.default_rng(seed)
    centers = np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]], dtype=np.float32)
    xs = np.vstack([c + rng.normal(0, 0.05, size=(per_class, 3)) for c in centers]).astype(np.float32)
    ys = np.repeat(np.arange(3), per_class)
    return xs, ys


def test_softmax_rows_sum_to_one():
    probs = softmax(np.array([[1.0, 2.0, 3.0], [1000.0, 0.0, -1000.0]]))
    assert np.allclose(probs.sum(axis=1), 1.0)
    assert np.isfinite(probs).all()


def test_trainer_learns_separable_classes():
    xs, ys = make_blobs()
    trainer = HeadTrainer(xs, ys, ["a", "b", "c"], TrainingConfig(epochs=25, batch_size=8))
    losses = [trainer.run_epoch()["loss"] for _ in range(25)]
    assert trainer.epoch == 25
    assert losses[-1] < losses[0]
    preds = np.argmax(trainer.head.predict_batch(xs), axis=1)
    assert (preds == ys).mean() == 1.0


def test_run_epoch_reports_loss_and_accuracy():
    xs, ys = make_blobs()
    logs = HeadTrainer(xs, ys, ["a", "b", "c"], TrainingConfig()).run_epoch()
    assert set(logs) == {"loss", "acc"}
    assert 0.0 <= logs["acc"] <= 1.0


def test_trainer_rejects_empty():
    with pytest.raises(ValueError):
        HeadTrainer(np.zeros((0, 3), dtype=np.float32), np.zeros(0), ["a"], TrainingConfig())


def test_artifact_round_trip_preserves_predictions():
    xs, ys = make_blobs()
    trainer = HeadTrainer(xs, ys, ["a", "b", 3], TrainingConfig(epochs=5))
    for _ in range(5):
        trainer.run_epoch()
    head = trainer.head
    restored = SoftmaxHead.from_artifact(head.to_artifact(), head.labels)
    assert restored.labels == ["a", "b", 3]
    assert np.allclose(restored.predict_batch(xs), head.predict_batch(xs), atol=1e-6)


def test_from_artifact_rejects_label_mismatch():
    xs, ys = make_blobs()
    head = HeadTrainer(xs, ys, ["a", "b", "c"], TrainingConfig()).head
    with pytest.raises(ValueError):
        SoftmaxHead.from_artifact(head.to_artifact(), ["a", "b"])
    with pytest.raises(ValueError):
        SoftmaxHead.from_artifact({"format": "autre"}, ["a"])


class TestTopK:
    def test_sorted_by_confidence(self):
        result = top_k_classes(np.array([0.1, 0.7, 0.2]), 3, ["a", "b", "c"])
        assert [label for label, _ in result] == ["b", "c", "a"]
        confidences = [c for _, c in result]
        assert confidences == sorted(confidences, reverse=True)

    def test_k_clamped_to_label_count(self):
        assert len(top_k_classes(np.array([0.5, 0.5]), 10, ["a", "b"])) == 2
        assert top_k_classes(np.array([0.5, 0.5]), -1, ["a", "b"]) == []

    def test_ties_keep_label_order(self):
        result = top_k_classes(np.array([0.25, 0.25, 0.5]), 2, ["x", "y", "z"])
        assert [label for label, _ in result] == ["z", "x"]

    def test_score_label_mismatch(self):
        with pytest.raises(ValueError):
            top_k_classes(np.array([1.0]), 1, ["a", "b"])
