"""
Import d'exemples depuis des fichiers WAV.

Pourquoi: completer ou remplacer la collecte au micro par des enregistrements
existants (un dossier par label).
Comment: charger, normaliser, crop, puis augmentations optionnelles.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterator, Optional

import numpy as np

from soundcommands import audio


def iter_example_waveforms(
    directory: Path,
    target_len: int,
    augmentations: int = 0,
    rng: Optional[np.random.Generator] = None,
    target_sr: int = audio.DEFAULT_TARGET_SR,
) -> Iterator[np.ndarray]:
    """
    Produit les signaux prets a embedder pour chaque WAV du dossier.

    Chaque fichier donne son signal pretraite puis `augmentations` variantes
    (gain + bruit + shift). Leve FileNotFoundError si le dossier est vide.
    """
    files = audio.list_wav_files(directory)
    if not files:
        raise FileNotFoundError(f"Aucun fichier WAV dans {directory}")
    if augmentations and rng is None:
        rng = np.random.default_rng()

    for path in files:
        samples, sample_rate = audio.load_mono_audio(path)
        waveform = audio.prepare_example(samples, sample_rate, target_len, target_sr)
        yield waveform
        for _ in range(augmentations):
            yield audio.augment_waveform(waveform, rng)
