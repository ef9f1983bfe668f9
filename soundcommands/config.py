"""
Configuration centralisee de la capture audio et de l'entrainement.

Pourquoi: partager les memes valeurs par defaut entre la bibliotheque et les CLI.
Comment: dataclasses figees, surchargees via dataclasses.replace().
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from soundcommands.audio import DEFAULT_TARGET_SR


@dataclass(frozen=True)
class AudioConfig:
    """Capture micro et frequence attendue par l'embedder."""

    sample_rate: int = 16000
    target_sr: int = DEFAULT_TARGET_SR
    channels: int = 1
    example_duration_s: float = 1.0
    device: Optional[int] = None
    # Si renseigne, chaque exemple capture est aussi archive en WAV (un dossier par label).
    capture_dir: Optional[Path] = None


@dataclass(frozen=True)
class TrainingConfig:
    """Hyperparametres de la tete de classification."""

    epochs: int = 25
    batch_size: int = 32
    learning_rate: float = 0.5
    l2: float = 1e-3
    seed: int = 123
