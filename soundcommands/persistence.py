"""
Lecture/ecriture des deux artefacts d'un modele entraine.

Pourquoi: model.json (topologie + poids) et metadata.json (labels, contexte
d'entrainement) doivent toujours rester appaires.
Comment: ecriture dans un dossier temporaire voisin puis os.replace des deux
fichiers; metadata.json porte l'empreinte sha256 de model.json pour detecter
une paire incoherente a la lecture.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any

from soundcommands.errors import ModelLoadError

logger = logging.getLogger(__name__)

MODEL_FILENAME = "model.json"
METADATA_FILENAME = "metadata.json"
CHECKSUM_KEY = "model_sha256"


def artifact_paths(directory: Path) -> tuple[Path, Path]:
    """Chemins (model.json, metadata.json) sous directory."""
    return directory / MODEL_FILENAME, directory / METADATA_FILENAME


def _dumps(payload: dict[str, Any]) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False)


def save_artifacts(directory: Path, model: dict[str, Any], metadata: dict[str, Any]) -> tuple[Path, Path]:
    """
    Ecrit model.json et metadata.json dans directory.

    Les deux contenus sont d'abord ecrits en entier dans un dossier de
    staging: un echec a ce stade laisse directory intact.
    """
    directory.mkdir(parents=True, exist_ok=True)
    model_path, metadata_path = artifact_paths(directory)

    model_text = _dumps(model)
    metadata = dict(metadata)
    metadata[CHECKSUM_KEY] = hashlib.sha256(model_text.encode("utf-8")).hexdigest()

    staging = Path(tempfile.mkdtemp(prefix=".soundcommands-", dir=directory))
    try:
        staged_model = staging / MODEL_FILENAME
        staged_metadata = staging / METADATA_FILENAME
        staged_model.write_text(model_text, encoding="utf-8")
        staged_metadata.write_text(_dumps(metadata), encoding="utf-8")
        # Meme systeme de fichiers: os.replace est atomique fichier par fichier.
        os.replace(staged_model, model_path)
        os.replace(staged_metadata, metadata_path)
    finally:
        shutil.rmtree(staging, ignore_errors=True)

    logger.info("Modèle sauvegardé: %s, %s", model_path, metadata_path)
    return model_path, metadata_path


def _read_json(path: Path) -> tuple[str, dict[str, Any]]:
    try:
        text = path.read_text(encoding="utf-8")
        payload = json.loads(text)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as err:
        raise ModelLoadError(f"Artefact illisible {path}: {err}") from err
    if not isinstance(payload, dict):
        raise ModelLoadError(f"Artefact mal formé {path}: objet JSON attendu")
    return text, payload


def read_artifacts(model_path: Path, metadata_path: Path) -> tuple[dict[str, Any], dict[str, Any]]:
    """
    Charge la paire (model, metadata) et verifie qu'elle est coherente.

    Leve ModelLoadError si un fichier manque, est mal forme, ou si
    l'empreinte enregistree ne correspond pas a model.json.
    """
    model_text, model = _read_json(model_path)
    _, metadata = _read_json(metadata_path)

    expected = metadata.get(CHECKSUM_KEY)
    if expected is not None:
        actual = hashlib.sha256(model_text.encode("utf-8")).hexdigest()
        if actual != expected:
            raise ModelLoadError(f"{model_path} ne correspond pas à {metadata_path} (empreinte différente)")
    if not isinstance(metadata.get("word_labels"), list):
        raise ModelLoadError(f"{metadata_path}: liste 'word_labels' manquante")
    return model, metadata
