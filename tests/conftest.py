"""
Fixtures partagees: source audio et embedder factices.

Les tests n'ouvrent ni micro ni graphe ONNX: FakeSource rejoue des sinus et
FakeEmbedder resume le spectre en quelques bandes d'energie.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

import numpy as np
import pytest

from soundcommands.config import AudioConfig, TrainingConfig
from soundcommands.extractor import SoundCommandsExtractor
from soundcommands.recognizer import BaseRecognizer

TEST_SAMPLE_RATE = 16000
TEST_AUDIO_LEN = 1600
# Une frequence par label, dans des bandes differentes de FakeEmbedder.
LOW_HZ = 500.0
HIGH_HZ = 2500.0


def sine(frequency: float, n_samples: int, sample_rate: int = TEST_SAMPLE_RATE, amplitude: float = 0.3, seed: Optional[int] = None) -> np.ndarray:
    t = np.arange(n_samples, dtype=np.float32) / sample_rate
    signal = amplitude * np.sin(2 * np.pi * frequency * t)
    if seed is not None:
        signal += np.random.default_rng(seed).normal(0.0, 0.01, size=n_samples)
    return signal.astype(np.float32)


class FakeEmbedder:
    """Energie du spectre en `bands` bandes, normalisee L2."""

    def __init__(self, audio_len: int = TEST_AUDIO_LEN, bands: int = 8, fail_load: bool = False):
        self.audio_len = audio_len
        self.bands = bands
        self.fail_load = fail_load
        self.fail_embed = False
        self.load_calls = 0

    def load(self):
        self.load_calls += 1
        if self.fail_load:
            raise RuntimeError("graphes ONNX absents")
        return self

    def embed_waveform(self, waveform: np.ndarray) -> np.ndarray:
        if self.fail_embed:
            raise RuntimeError("embedding impossible")
        x = np.asarray(waveform, dtype=np.float32).reshape(-1)[: self.audio_len]
        x = np.pad(x, (0, self.audio_len - x.size))
        spectrum = np.abs(np.fft.rfft(x))
        vec = np.array([band.sum() for band in np.array_split(spectrum, self.bands)], dtype=np.float32)
        return vec / float(np.linalg.norm(vec) + 1e-12)


class FakeStream:
    def __init__(self, source: "FakeSource", on_block: Callable[[np.ndarray], None], blocksize: int, on_status=None):
        self.source = source
        self.on_block = on_block
        self.on_status = on_status
        self.blocksize = blocksize
        self.active = False
        self.closed = False

    def start(self) -> None:
        if any(s.active for s in self.source.streams if s is not self):
            self.source.overlaps += 1
        self.active = True

    def stop(self) -> None:
        self.active = False

    def close(self) -> None:
        self.closed = True


class FakeSource:
    """
    Source audio scriptable.

    record() rend un sinus a self.frequency; emit() pousse un bloc dans le
    flux actif comme le ferait le thread PortAudio.
    """

    def __init__(self, sample_rate: int = TEST_SAMPLE_RATE):
        self.sample_rate = sample_rate
        self.frequency = LOW_HZ
        self.recordings = 0
        self.streams: list[FakeStream] = []
        self.overlaps = 0
        self.fail_open = False

    def record(self, duration_s: float) -> np.ndarray:
        self.recordings += 1
        return sine(self.frequency, int(duration_s * self.sample_rate), self.sample_rate, seed=self.recordings)

    def open_stream(self, on_block, blocksize, on_status=None):
        if self.fail_open:
            raise OSError("périphérique indisponible")
        stream = FakeStream(self, on_block, blocksize, on_status)
        self.streams.append(stream)
        return stream

    @property
    def active_streams(self) -> list[FakeStream]:
        return [s for s in self.streams if s.active]

    def emit(self, block: np.ndarray) -> None:
        for stream in self.active_streams:
            stream.on_block(block)

    def report_status(self, status: str) -> None:
        """Simule un drapeau PortAudio (overflow...) sur le flux actif."""
        for stream in self.active_streams:
            if stream.on_status is not None:
                stream.on_status(status)


async def wait_for(predicate: Callable[[], bool], timeout: float = 3.0) -> None:
    """Laisse tourner la boucle jusqu'a ce que predicate() soit vrai."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition non atteinte avant le délai")
        await asyncio.sleep(0.01)


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def fake_source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def make_extractor(fake_embedder, fake_source):
    """Fabrique d'extracteurs branches sur les fakes (a appeler dans une coroutine)."""

    def factory(embedder: Optional[FakeEmbedder] = None, source: Optional[FakeSource] = None, callback=None, epochs: int = 25, capture_dir=None):
        base = BaseRecognizer(
            embedder=embedder or fake_embedder,
            source=source or fake_source,
            audio_config=AudioConfig(sample_rate=TEST_SAMPLE_RATE, example_duration_s=0.2, capture_dir=capture_dir),
        )
        return SoundCommandsExtractor(callback, base_model=base, training_config=TrainingConfig(epochs=epochs))

    return factory


async def collect(extractor: SoundCommandsExtractor, source: FakeSource, label, frequency: float, times: int = 3) -> None:
    source.frequency = frequency
    for _ in range(times):
        await extractor.add_example(label)
