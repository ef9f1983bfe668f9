"""
Acces au micro: capture d'un exemple et flux continu.

Pourquoi: isoler sounddevice derriere une petite interface (record /
open_stream) que le modele de transfert sequence, et que les tests
remplacent par une source factice.
Comment: sd.rec bloquant pour un exemple, sd.InputStream + callback pour
l'ecoute en continu.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol

import numpy as np
import sounddevice as sd

from soundcommands.config import AudioConfig

logger = logging.getLogger(__name__)

BlockCallback = Callable[[np.ndarray], None]
StatusCallback = Callable[[str], None]


class AudioStream(Protocol):
    def start(self) -> None: ...

    def stop(self) -> None: ...

    def close(self) -> None: ...


class AudioSource(Protocol):
    """Interface minimale attendue par TransferRecognizer."""

    sample_rate: int

    def record(self, duration_s: float) -> np.ndarray: ...

    def open_stream(self, on_block: BlockCallback, blocksize: int, on_status: Optional[StatusCallback] = None) -> AudioStream: ...


class MicrophoneSource:
    """
    Source micro sounddevice.

    Les blocs livres a on_block sont mono float32 a config.sample_rate,
    depuis le thread audio de PortAudio.
    """

    def __init__(self, config: Optional[AudioConfig] = None):
        self.config = config or AudioConfig()
        self.sample_rate = self.config.sample_rate

    def record(self, duration_s: float) -> np.ndarray:
        frames = int(round(duration_s * self.sample_rate))
        rec = sd.rec(
            frames,
            samplerate=self.sample_rate,
            channels=self.config.channels,
            device=self.config.device,
            dtype="float32",
            blocking=True,
        )
        return rec[:, 0].astype(np.float32) if rec.ndim == 2 else rec.astype(np.float32)

    def open_stream(self, on_block: BlockCallback, blocksize: int, on_status: Optional[StatusCallback] = None) -> sd.InputStream:
        """
        Flux micro continu. on_status recoit les drapeaux PortAudio
        (overflow...) depuis le thread audio.
        """

        def callback(indata, frames, time_info, status):
            if status:
                logger.warning("Flux micro: %s", status)
                if on_status is not None:
                    on_status(str(status))
            # 1er canal uniquement (mono).
            on_block(indata[:, 0].astype(np.float32))

        return sd.InputStream(
            device=self.config.device,
            channels=self.config.channels,
            samplerate=self.sample_rate,
            blocksize=int(blocksize),
            dtype="float32",
            callback=callback,
        )


def list_input_devices() -> list[tuple[int, str, int]]:
    """
    Devices avec au moins un canal d'entree: (index, nom, canaux).
    """
    devices: list[tuple[int, str, int]] = []
    for index, dev in enumerate(sd.query_devices()):
        if dev["max_input_channels"] > 0:
            devices.append((index, dev.get("name", "unknown"), int(dev.get("max_input_channels", 0))))
    return devices

