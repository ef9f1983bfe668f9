"""
Utilitaires audio pour la preparation des exemples sonores.

Pourquoi: regrouper les operations basiques (I/O, normalisation, resampling)
partagees par la collecte d'exemples et la classification en continu.
Comment: fonctions NumPy simples, sans dependances lourdes.
"""

from __future__ import annotations

from pathlib import Path
from typing import Tuple

import numpy as np
import soundfile as sf

# Fréquence attendue par l'embedder.
DEFAULT_TARGET_SR = 16000
# Paramètres d'analyse d'énergie (en secondes).
ENERGY_FRAME_S = 0.02
ENERGY_HOP_S = 0.01


def list_wav_files(directory: Path) -> list[Path]:
    """
    Liste triee des fichiers WAV presents dans un dossier.

    Pourquoi: ordre stable pour l'import d'exemples et la reproductibilite.
    """
    return sorted([p for p in directory.glob("*.wav") if p.is_file()])


def load_mono_audio(path: Path) -> tuple[np.ndarray, int]:
    """
    Charge un fichier audio en mono float32 sans offset DC.

    Retourne le signal (1D) et la fréquence d'échantillonnage.
    """
    samples, sample_rate = sf.read(str(path), always_2d=True, dtype="float32")
    return to_mono(samples), int(sample_rate)


def to_mono(samples: np.ndarray) -> np.ndarray:
    """
    Ramene un bloc (N,) ou (N, C) a un signal mono centre.

    Pourquoi: le micro et les fichiers WAV n'ont pas toujours un seul canal.
    Comment: moyenne des canaux + retrait de la moyenne (DC offset).
    """
    samples = np.asarray(samples, dtype=np.float32)
    mono = samples.mean(axis=1) if samples.ndim == 2 else samples.reshape(-1)
    mono = mono.astype(np.float32)
    return mono - float(np.mean(mono)) if mono.size else mono


def resample_linear(samples: np.ndarray, source_sr: int, target_sr: int) -> np.ndarray:
    """
    Rééchantillonne linéairement un signal 1D vers target_sr.

    Pourquoi: normaliser la frequence d'entree pour l'embedder (16 kHz).
    Comment: interpolation lineaire sur une base temporelle normalisee.
    """
    if source_sr == target_sr or samples.size == 0:
        return samples.astype(np.float32, copy=False)
    n_out = int(round(samples.size * (target_sr / source_sr)))
    if n_out <= 1:
        return np.zeros((0,), dtype=np.float32)
    t_in = np.linspace(0.0, 1.0, num=samples.size, endpoint=False, dtype=np.float32)
    t_out = np.linspace(0.0, 1.0, num=n_out, endpoint=False, dtype=np.float32)
    return np.interp(t_out, t_in, samples).astype(np.float32)


def downsample_48k_to_16k(samples: np.ndarray) -> np.ndarray:
    """
    Sous-échantillonne par facteur 3 (48 kHz -> 16 kHz). Ne pas utiliser si la
    fréquence n'est pas exactement 48 kHz.
    """
    return samples[::3].astype(np.float32, copy=False)


def to_target_rate(samples: np.ndarray, source_sr: int, target_sr: int = DEFAULT_TARGET_SR) -> np.ndarray:
    """
    Convertit un signal micro vers la frequence de l'embedder.

    Comment: decimation brute pour le cas 48k -> 16k, interpolation sinon.
    """
    if source_sr == 48000 and target_sr == 16000:
        return downsample_48k_to_16k(samples)
    return resample_linear(samples, source_sr, target_sr)


def rms_normalize(samples: np.ndarray, target_rms: float = 0.03) -> np.ndarray:
    """
    Normalise le volume RMS de maniere douce et clippe via tanh.

    Pourquoi: stabiliser les embeddings malgre des volumes variables.
    Comment: calcul RMS -> gain borne -> tanh pour limiter les pics.
    """
    if samples.size == 0:
        return samples
    rms = float(np.sqrt(np.mean(samples * samples) + 1e-12))
    gain = float(np.clip(target_rms / (rms + 1e-12), 0.1, 10.0))
    return np.tanh(samples * gain).astype(np.float32)


def center_crop_on_energy(samples: np.ndarray, sample_rate: int, target_len: int) -> np.ndarray:
    """
    Extrait target_len échantillons centrés sur le frame RMS le plus énergétique.

    Pourquoi: recentrer sur la zone la plus informative (le son lui-meme).
    Comment: fenetrage court -> RMS par frame -> crop centre.
    """
    if target_len <= 0:
        return np.zeros((0,), dtype=np.float32)
    if samples.size == 0:
        return np.zeros((target_len,), dtype=np.float32)

    frame = max(int(round(ENERGY_FRAME_S * sample_rate)), 1)
    hop = max(int(round(ENERGY_HOP_S * sample_rate)), 1)

    padded = samples if samples.size >= frame else np.pad(samples, (0, frame - samples.size))
    n_frames = 1 + (padded.size - frame) // hop
    rms = np.empty((n_frames,), dtype=np.float32)
    for i in range(n_frames):
        start = i * hop
        seg = padded[start:start + frame]
        rms[i] = float(np.sqrt(np.mean(seg * seg) + 1e-12))
    center = int(np.argmax(rms)) * hop + frame // 2

    start = center - target_len // 2
    end = start + target_len

    if start < 0:
        samples = np.pad(samples, (-start, 0))
        start = 0
        end = target_len
    if end > samples.size:
        samples = np.pad(samples, (0, end - samples.size))
    return samples[start:end].astype(np.float32)


def prepare_example(samples: np.ndarray, source_sr: int, target_len: int, target_sr: int = DEFAULT_TARGET_SR) -> np.ndarray:
    """
    Chaine de pretraitement d'un exemple avant embedding.

    Comment: mono -> frequence cible -> normalisation RMS -> crop sur l'energie.
    """
    mono = to_mono(samples)
    mono = to_target_rate(mono, source_sr, target_sr)
    mono = rms_normalize(mono)
    return center_crop_on_energy(mono, target_sr, target_len=target_len)


def augment_waveform(
    samples: np.ndarray,
    rng: np.random.Generator,
    gain_range: Tuple[float, float] = (0.7, 1.3),
    noise_std: float = 0.003,
    max_shift: int = 200,
) -> np.ndarray:
    """
    Augmentation légère et rapide : gain aléatoire, bruit blanc, petit décalage.
    """
    augmented = samples.astype(np.float32, copy=True)
    augmented *= float(rng.uniform(gain_range[0], gain_range[1]))
    augmented += rng.normal(0.0, noise_std, size=augmented.shape).astype(np.float32)
    augmented = np.roll(augmented, int(rng.integers(-max_shift, max_shift)))
    return np.tanh(augmented).astype(np.float32)


def next_index(folder: Path, prefix: str) -> int:
    """
    Index suivant pour ne pas ecraser les enregistrements existants (max + 1).
    """
    nums = [
        int(f.stem.split("_")[-1])
        for f in folder.glob(f"{prefix}_*.wav")
        if f.stem.split("_")[-1].isdigit()
    ]
    return max(nums) + 1 if nums else 1


def save_wav(folder: Path, prefix: str, samples: np.ndarray, sample_rate: int) -> Path:
    """
    Ecrit un exemple capture en WAV sous folder/prefix_NNN.wav.
    """
    folder.mkdir(parents=True, exist_ok=True)
    path = folder / f"{prefix}_{next_index(folder, prefix):03d}.wav"
    sf.write(path, samples, sample_rate)
    return path
