"""
Classification en continu sur une fenetre glissante.

Pourquoi: isoler la logique de streaming (buffer, recouvrement, seuil,
suppression) de l'orchestration asyncio et du micro.
Comment: un ring buffer conserve la derniere fenetre a la frequence de
l'embedder; tous les `hop` echantillons elle est embeddee puis scoree par la
tete softmax.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, fields
from typing import Any, Callable, Mapping, Optional

import numpy as np

from soundcommands import audio

logger = logging.getLogger(__name__)

# Labels consideres comme "rien d'interessant" pour invoke_callback_on_noise_and_unknown.
BACKGROUND_NOISE_LABEL = "_background_noise_"
UNKNOWN_LABEL = "_unknown_"


@dataclass(frozen=True)
class ListenOptions:
    """Parametres de l'ecoute en continu."""

    # Un resultat n'est publie que si le meilleur score atteint ce seuil.
    probability_threshold: float = 0.0
    # Recouvrement entre deux fenetres consecutives, dans [0, 1).
    overlap_factor: float = 0.5
    # Silence impose apres un resultat publie.
    suppression_time_ms: float = 0.0
    include_embedding: bool = False
    invoke_callback_on_noise_and_unknown: bool = True

    def __post_init__(self):
        if not 0.0 <= self.overlap_factor < 1.0:
            raise ValueError(f"overlap_factor doit être dans [0, 1): {self.overlap_factor}")
        if not 0.0 <= self.probability_threshold <= 1.0:
            raise ValueError(f"probability_threshold doit être dans [0, 1]: {self.probability_threshold}")
        if self.suppression_time_ms < 0:
            raise ValueError("suppression_time_ms doit être positif")

    def merged(self, overrides: Mapping[str, Any]) -> "ListenOptions":
        """
        Copie avec overrides appliques (les cles posterieures l'emportent).

        Leve TypeError sur une cle inconnue.
        """
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise TypeError(f"Options d'écoute inconnues: {sorted(unknown)}")
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values.update(overrides)
        return ListenOptions(**values)


@dataclass
class StreamResult:
    """Un resultat par fenetre evaluee; scores alignes sur les labels du modele."""

    scores: Optional[np.ndarray]
    embedding: Optional[np.ndarray] = None
    timestamp: float = 0.0


class SlidingWindow:
    """
    Buffer circulaire 1D de taille fixe.

    Comment: on decale le buffer et on injecte les derniers echantillons.
    """

    def __init__(self, length: int):
        self.buffer = np.zeros((length,), dtype=np.float32)
        self.filled = 0

    @property
    def full(self) -> bool:
        return self.filled >= self.buffer.size

    def push(self, samples: np.ndarray) -> None:
        n = samples.size
        if n <= 0:
            return
        if n >= self.buffer.size:
            self.buffer[:] = samples[-self.buffer.size:]
        else:
            self.buffer[:-n] = self.buffer[n:]
            self.buffer[-n:] = samples
        self.filled = min(self.filled + n, self.buffer.size)

    def get(self) -> np.ndarray:
        return self.buffer.copy()


class StreamingClassifier:
    """
    Transforme un flux de blocs micro en fenetres a scorer, puis en resultats.

    push() est appele depuis le thread audio et dit si une fenetre est prete;
    evaluate() fait le travail couteux (embedding + tete) hors de ce thread.
    """

    def __init__(
        self,
        embed: Callable[[np.ndarray], np.ndarray],
        score: Callable[[np.ndarray], np.ndarray],
        labels: list,
        window_len: int,
        source_sr: int,
        options: ListenOptions,
        target_sr: int = audio.DEFAULT_TARGET_SR,
    ):
        self.embed = embed
        self.score = score
        self.labels = list(labels)
        self.options = options
        self.source_sr = int(source_sr)
        self.target_sr = int(target_sr)
        self.window = SlidingWindow(length=window_len)
        self.hop = max(int(round(window_len * (1.0 - options.overlap_factor))), 1)
        self.pending = 0
        self.suppressed_until = 0.0

    @property
    def source_hop(self) -> int:
        """Taille de bloc micro correspondant a un hop."""
        return max(int(round(self.hop * self.source_sr / self.target_sr)), 1)

    def push(self, block: np.ndarray) -> Optional[np.ndarray]:
        """
        Ajoute un bloc micro; retourne une copie de la fenetre si un hop est atteint.
        """
        converted = audio.to_target_rate(np.asarray(block, dtype=np.float32).reshape(-1), self.source_sr, self.target_sr)
        self.window.push(converted)
        self.pending += converted.size
        if not self.window.full or self.pending < self.hop:
            return None
        self.pending = 0
        return self.window.get()

    def evaluate(self, waveform: np.ndarray, now: Optional[float] = None) -> Optional[StreamResult]:
        """
        Score une fenetre; None si le resultat est filtre (seuil, bruit, suppression).
        """
        now = time.monotonic() if now is None else now
        if now < self.suppressed_until:
            return None

        embedding = self.embed(audio.rms_normalize(waveform))
        scores = self.score(embedding)
        best = int(np.argmax(scores))
        logger.debug("Fenêtre scorée: %s=%.3f", self.labels[best], float(scores[best]))

        if float(scores[best]) < self.options.probability_threshold:
            return None
        if not self.options.invoke_callback_on_noise_and_unknown and self.labels[best] in (
            BACKGROUND_NOISE_LABEL,
            UNKNOWN_LABEL,
        ):
            return None

        if self.options.suppression_time_ms > 0:
            self.suppressed_until = now + self.options.suppression_time_ms / 1000.0
        return StreamResult(
            scores=scores,
            embedding=embedding if self.options.include_embedding else None,
            timestamp=now,
        )
