"""Tests de l'ecriture/lecture de la paire model.json / metadata.json."""

import json

import pytest

from soundcommands import persistence
from soundcommands.errors import ModelLoadError

MODEL = {"format": "x", "weights": {"W": [[1.0]]}}
METADATA = {"word_labels": ["a"], "model_name": "transfer"}


def test_save_writes_both_files(tmp_path):
    model_path, metadata_path = persistence.save_artifacts(tmp_path / "out", MODEL, METADATA)
    assert model_path.name == "model.json"
    assert metadata_path.name == "metadata.json"
    assert json.loads(model_path.read_text()) == MODEL
    saved_meta = json.loads(metadata_path.read_text())
    assert saved_meta["word_labels"] == ["a"]
    assert persistence.CHECKSUM_KEY in saved_meta


def test_save_leaves_no_staging_dir(tmp_path):
    persistence.save_artifacts(tmp_path, MODEL, METADATA)
    assert sorted(p.name for p in tmp_path.iterdir()) == ["metadata.json", "model.json"]


def test_failed_staging_keeps_previous_pair(tmp_path):
    persistence.save_artifacts(tmp_path, MODEL, METADATA)
    before = (tmp_path / "model.json").read_text()
    with pytest.raises(TypeError):
        persistence.save_artifacts(tmp_path, MODEL, {"word_labels": ["a"], "bad": object()})
    assert (tmp_path / "model.json").read_text() == before
    persistence.read_artifacts(*persistence.artifact_paths(tmp_path))


def test_read_round_trip(tmp_path):
    persistence.save_artifacts(tmp_path, MODEL, METADATA)
    model, metadata = persistence.read_artifacts(*persistence.artifact_paths(tmp_path))
    assert model == MODEL
    assert metadata["word_labels"] == ["a"]


def test_read_missing_file(tmp_path):
    with pytest.raises(ModelLoadError):
        persistence.read_artifacts(*persistence.artifact_paths(tmp_path))


def test_read_malformed_json(tmp_path):
    (tmp_path / "model.json").write_text("{pas du json")
    (tmp_path / "metadata.json").write_text(json.dumps(METADATA))
    with pytest.raises(ModelLoadError):
        persistence.read_artifacts(*persistence.artifact_paths(tmp_path))


def test_read_detects_mismatched_pair(tmp_path):
    persistence.save_artifacts(tmp_path, MODEL, METADATA)
    (tmp_path / "model.json").write_text(json.dumps({"format": "x", "weights": {}}))
    with pytest.raises(ModelLoadError):
        persistence.read_artifacts(*persistence.artifact_paths(tmp_path))


def test_read_requires_word_labels(tmp_path):
    (tmp_path / "model.json").write_text(json.dumps(MODEL))
    (tmp_path / "metadata.json").write_text(json.dumps({"model_name": "x"}))
    with pytest.raises(ModelLoadError):
        persistence.read_artifacts(*persistence.artifact_paths(tmp_path))
