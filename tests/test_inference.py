"""Tests de la fenetre glissante et de l'evaluation en continu."""

import numpy as np
import pytest

from soundcommands.inference import (
    BACKGROUND_NOISE_LABEL,
    ListenOptions,
    SlidingWindow,
    StreamingClassifier,
)


class TestSlidingWindow:
    def test_push_keeps_latest_samples(self):
        window = SlidingWindow(4)
        window.push(np.array([1, 2], dtype=np.float32))
        assert not window.full
        window.push(np.array([3, 4, 5], dtype=np.float32))
        assert window.full
        assert window.get().tolist() == [2, 3, 4, 5]

    def test_block_larger_than_window(self):
        window = SlidingWindow(3)
        window.push(np.arange(10, dtype=np.float32))
        assert window.get().tolist() == [7, 8, 9]

    def test_get_returns_copy(self):
        window = SlidingWindow(2)
        window.push(np.ones(2, dtype=np.float32))
        window.get()[0] = 42
        assert window.get()[0] == 1


class TestListenOptions:
    def test_merged_overrides_and_keeps_others(self):
        opts = ListenOptions(probability_threshold=0.3).merged({"overlap_factor": 0.25})
        assert opts.probability_threshold == 0.3
        assert opts.overlap_factor == 0.25

    def test_unknown_key(self):
        with pytest.raises(TypeError):
            ListenOptions().merged({"nope": 1})

    @pytest.mark.parametrize("kwargs", [{"overlap_factor": 1.0}, {"probability_threshold": 1.5}, {"suppression_time_ms": -1}])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            ListenOptions(**kwargs)


def make_classifier(scores, labels=("a", "b"), **options):
    return StreamingClassifier(
        embed=lambda w: np.ones(2, dtype=np.float32),
        score=lambda e: np.asarray(scores, dtype=np.float32),
        labels=list(labels),
        window_len=100,
        source_sr=16000,
        options=ListenOptions(**options),
    )


class TestStreamingClassifier:
    def test_push_emits_window_every_hop(self):
        clf = make_classifier([0.5, 0.5], overlap_factor=0.5)
        assert clf.hop == 50
        assert clf.push(np.zeros(60, dtype=np.float32)) is None  # fenetre pas encore pleine
        assert clf.push(np.zeros(40, dtype=np.float32)) is not None
        assert clf.push(np.zeros(30, dtype=np.float32)) is None
        window = clf.push(np.zeros(20, dtype=np.float32))
        assert window is not None and window.shape == (100,)

    def test_source_hop_accounts_for_sample_rate(self):
        clf = StreamingClassifier(
            embed=lambda w: w,
            score=lambda e: e,
            labels=["a"],
            window_len=1600,
            source_sr=48000,
            options=ListenOptions(overlap_factor=0.5),
        )
        assert clf.source_hop == 2400

    def test_evaluate_returns_scores(self):
        result = make_classifier([0.2, 0.8]).evaluate(np.zeros(100, dtype=np.float32), now=0.0)
        assert result is not None
        assert result.scores.tolist() == pytest.approx([0.2, 0.8])
        assert result.embedding is None

    def test_threshold_filters(self):
        clf = make_classifier([0.4, 0.6], probability_threshold=0.7)
        assert clf.evaluate(np.zeros(100, dtype=np.float32), now=0.0) is None

    def test_noise_label_filtered_when_requested(self):
        clf = make_classifier([0.9, 0.1], labels=(BACKGROUND_NOISE_LABEL, "b"), invoke_callback_on_noise_and_unknown=False)
        assert clf.evaluate(np.zeros(100, dtype=np.float32), now=0.0) is None

    def test_suppression_window(self):
        clf = make_classifier([0.1, 0.9], suppression_time_ms=500)
        waveform = np.zeros(100, dtype=np.float32)
        assert clf.evaluate(waveform, now=10.0) is not None
        assert clf.evaluate(waveform, now=10.2) is None
        assert clf.evaluate(waveform, now=10.6) is not None

    def test_include_embedding(self):
        result = make_classifier([0.5, 0.5], include_embedding=True).evaluate(np.zeros(100, dtype=np.float32), now=0.0)
        assert result.embedding is not None
