"""
Modele de base: embeddings audio pre-entraines (graphes ONNX openWakeWord).

Pourquoi: le transfert d'apprentissage reutilise ces embeddings figes et
n'entraine qu'une tete de classification legere par-dessus.
Comment: passe mel -> mise en forme NHWC -> passe embedding -> normalisation L2.
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import onnxruntime as ort
import openwakeword

from soundcommands.errors import ModelLoadError

logger = logging.getLogger(__name__)

MEL_MODEL_NAME = "melspectrogram.onnx"
EMB_MODEL_NAME = "embedding_model.onnx"
# Valeurs par défaut si les shapes ne sont pas renseignées par ONNX.
DEFAULT_AUDIO_LEN = 16000
DEFAULT_T_REQ = 76
DEFAULT_F_REQ = 32


def resolve_model_path(model_name: str) -> Path:
    """
    Chemin d'un graphe embarque dans le package openwakeword.

    Leve ModelLoadError si le graphe n'a pas encore ete telecharge
    (voir soundcommands-install-models).
    """
    base = Path(openwakeword.__file__).resolve().parent / "resources" / "models"
    path = base / model_name
    if not path.exists():
        raise ModelLoadError(f"Graphe openWakeWord introuvable: {path}")
    return path


def _static_dim(shape: object, index: int, default: int) -> int:
    # Les exports ONNX peuvent laisser des dimensions dynamiques (None / str).
    if isinstance(shape, (list, tuple)) and len(shape) > index and isinstance(shape[index], int):
        return int(shape[index])
    return int(default)


def fit_axis(arr: np.ndarray, axis: int, target: int) -> np.ndarray:
    """
    Crop ou pad centre de arr sur un axe pour atteindre target.
    """
    current = int(arr.shape[axis])
    if current == target:
        return arr
    if current > target:
        start = (current - target) // 2
        return np.take(arr, np.arange(start, start + target), axis=axis)
    before = (target - current) // 2
    pad_width = [(0, 0)] * arr.ndim
    pad_width[axis] = (before, target - current - before)
    return np.pad(arr, pad_width, mode="constant")


def mel_to_nhwc(mel: np.ndarray, freq_bins: int) -> np.ndarray:
    """
    Ramene une sortie mel vers [1, T, F, 1].

    Les graphes mel rencontres sortent [1, 1, T, F], [1, T, F] ou [T, F].
    """
    mel = np.asarray(mel, dtype=np.float32)
    # On retire les axes unitaires puis on reconstruit le format attendu.
    core = mel.reshape([d for d in mel.shape if d != 1] or [1])
    if core.ndim == 1:
        core = core[np.newaxis, :]
    if core.ndim != 2:
        raise ValueError(f"Shape mel non gérée: {mel.shape}")
    if core.shape[1] != freq_bins and core.shape[0] == freq_bins:
        core = core.T
    return core[np.newaxis, :, :, np.newaxis].astype(np.float32)


def fit_waveform(samples: np.ndarray, target_len: int) -> np.ndarray:
    """
    Pad en fin ou coupe au centre pour obtenir exactement target_len echantillons.
    """
    x = np.asarray(samples, dtype=np.float32).reshape(-1)
    if x.size < target_len:
        return np.pad(x, (0, target_len - x.size))
    start = (x.size - target_len) // 2
    return x[start:start + target_len]


class SoundEmbedder:
    """
    Extracteur d'embeddings base sur onnxruntime.

    Le chargement des sessions est differe a load() pour que la construction
    reste instantanee; le modele de base l'appelle une seule fois.
    """

    def __init__(self, threads: int = 1):
        self.threads = int(threads)
        self.audio_len = DEFAULT_AUDIO_LEN
        self.t_req = DEFAULT_T_REQ
        self.f_req = DEFAULT_F_REQ
        self.mel = None
        self.emb = None

    @property
    def loaded(self) -> bool:
        return self.mel is not None and self.emb is not None

    def load(self) -> "SoundEmbedder":
        if self.loaded:
            return self
        opts = ort.SessionOptions()
        opts.intra_op_num_threads = self.threads
        opts.inter_op_num_threads = self.threads
        try:
            self.mel = ort.InferenceSession(
                str(resolve_model_path(MEL_MODEL_NAME)), sess_options=opts, providers=["CPUExecutionProvider"]
            )
            self.emb = ort.InferenceSession(
                str(resolve_model_path(EMB_MODEL_NAME)), sess_options=opts, providers=["CPUExecutionProvider"]
            )
        except ModelLoadError:
            raise
        except Exception as err:
            raise ModelLoadError(f"Impossible d'ouvrir les graphes ONNX: {err}") from err

        self.audio_len = _static_dim(self.mel.get_inputs()[0].shape, 1, DEFAULT_AUDIO_LEN)
        emb_shape = self.emb.get_inputs()[0].shape
        self.t_req = _static_dim(emb_shape, 1, DEFAULT_T_REQ)
        self.f_req = _static_dim(emb_shape, 2, DEFAULT_F_REQ)
        logger.info("Embedder chargé (audio_len=%d, T=%d, F=%d)", self.audio_len, self.t_req, self.f_req)
        return self

    def _run_mel(self, waveform: np.ndarray) -> np.ndarray:
        mel_in = self.mel.get_inputs()[0]
        mel_out = self.mel.get_outputs()[0]
        raw = self.mel.run([mel_out.name], {mel_in.name: waveform.reshape(1, -1)})[0]
        nhwc = mel_to_nhwc(raw, self.f_req)
        nhwc = fit_axis(nhwc, axis=2, target=self.f_req)
        return fit_axis(nhwc, axis=1, target=self.t_req).astype(np.float32)

    def embed_waveform(self, audio_16k: np.ndarray) -> np.ndarray:
        """
        Transforme un signal mono 16 kHz en embedding normalise L2 (1D).
        """
        if not self.loaded:
            raise ModelLoadError("Embedder non chargé: appeler load() d'abord.")
        mel = self._run_mel(fit_waveform(audio_16k, self.audio_len))
        emb_in = self.emb.get_inputs()[0]
        emb_out = self.emb.get_outputs()[0]
        emb = np.asarray(self.emb.run([emb_out.name], {emb_in.name: mel})[0], dtype=np.float32).reshape(-1)
        return emb / float(np.linalg.norm(emb) + 1e-12)
