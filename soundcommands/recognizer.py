"""
Modele de base et modele de transfert.

Pourquoi: regrouper derriere un protocole fixe (ensure_model_loaded,
collect_example, train, listen, save...) tout ce qui touche au micro, a
l'embedder et a la tete entrainee, pour que l'extracteur ne fasse que
sequencer des appels.
Comment: BaseRecognizer possede l'embedder et la source audio; chaque
TransferRecognizer possede ses exemples, sa tete et sa session d'ecoute.
Le travail bloquant passe par asyncio.to_thread.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Union

import numpy as np

from soundcommands import audio, persistence
from soundcommands.config import AudioConfig, TrainingConfig
from soundcommands.dataset import iter_example_waveforms
from soundcommands.errors import BusyError, InsufficientDataError, ModelLoadError, NoModelError, StreamError
from soundcommands.examples import ExampleStore, Label
from soundcommands.inference import ListenOptions, StreamingClassifier, StreamResult
from soundcommands.training import HeadTrainer, SoftmaxHead

logger = logging.getLogger(__name__)

# Fenetres en attente d'evaluation; au-dela on jette la plus ancienne.
MAX_PENDING_WINDOWS = 4

ResultCallback = Callable[[StreamResult], Any]
ErrorCallback = Callable[[BaseException], Any]
SaveHandler = Callable[[dict, dict], Union[Any, Awaitable[Any]]]


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


@dataclass
class TransferTrainConfig:
    """Parametres d'un appel a TransferRecognizer.train()."""

    training: TrainingConfig = field(default_factory=TrainingConfig)
    on_epoch_end: Optional[Callable[[int, dict], Any]] = None
    on_train_end: Optional[Callable[[], Any]] = None


def with_epochs(config: TrainingConfig, epochs: Optional[int]) -> TrainingConfig:
    """Copie de config avec un nombre d'epoques surcharge."""
    return config if epochs is None else replace(config, epochs=int(epochs))


def _default_embedder():
    from soundcommands.embedder import SoundEmbedder

    return SoundEmbedder()


def _default_source(config: AudioConfig):
    # Import local: sounddevice exige PortAudio au chargement.
    from soundcommands.recording import MicrophoneSource

    return MicrophoneSource(config)


class BaseRecognizer:
    """
    Modele de base pre-entraine, charge une seule fois.

    embedder doit exposer load(), embed_waveform() et audio_len; source
    doit respecter recording.AudioSource.
    """

    def __init__(self, embedder=None, source=None, audio_config: Optional[AudioConfig] = None):
        self.audio_config = audio_config or AudioConfig()
        self.embedder = embedder if embedder is not None else _default_embedder()
        self._source = source
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def source(self):
        if self._source is None:
            self._source = _default_source(self.audio_config)
        return self._source

    async def ensure_model_loaded(self) -> None:
        if self._loaded:
            return
        try:
            await asyncio.to_thread(self.embedder.load)
        except ModelLoadError:
            raise
        except Exception as err:
            raise ModelLoadError(f"Chargement du modèle de base impossible: {err}") from err
        self._loaded = True
        logger.info("Modèle de base prêt (audio_len=%d)", self.embedder.audio_len)

    def embed_example(self, samples: np.ndarray, sample_rate: int) -> np.ndarray:
        """Pretraitement complet d'un exemple brut puis embedding."""
        waveform = audio.prepare_example(
            samples, sample_rate, self.embedder.audio_len, self.audio_config.target_sr
        )
        return self.embedder.embed_waveform(waveform)

    def create_transfer(self, name: str) -> "TransferRecognizer":
        if not self._loaded:
            raise ModelLoadError("Modèle de base non chargé.")
        return TransferRecognizer(name, self)

    def load_transfer(self, model_path: Path, metadata_path: Path) -> "TransferRecognizer":
        """
        Modele de transfert lie a deux artefacts; lus par ensure_model_loaded().
        """
        return TransferRecognizer(Path(model_path).parent.name or "transfer", self, artifacts=(model_path, metadata_path))


class TransferRecognizer:
    """
    Tete de classification entrainable au-dessus du modele de base.
    """

    def __init__(self, name: str, base: BaseRecognizer, artifacts: Optional[tuple[Path, Path]] = None):
        self.name = name
        self.base = base
        self.store = ExampleStore()
        self.head: Optional[SoftmaxHead] = None
        self.epochs_trained = 0
        self._artifacts = artifacts
        self._stream = None
        self._listen_task: Optional[asyncio.Task] = None

    async def ensure_model_loaded(self) -> None:
        await self.base.ensure_model_loaded()
        if self._artifacts is None or self.head is not None:
            return
        model, metadata = await asyncio.to_thread(persistence.read_artifacts, *self._artifacts)
        try:
            self.head = SoftmaxHead.from_artifact(model, metadata["word_labels"])
        except (KeyError, TypeError, ValueError) as err:
            raise ModelLoadError(f"Modèle sauvegardé invalide: {err}") from err
        self.name = metadata.get("model_name", self.name)
        self.epochs_trained = int(metadata.get("epochs", 0))
        logger.info("Modèle '%s' chargé: %d labels", self.name, len(self.head.labels))

    # --- Ecoute -----------------------------------------------------------

    def is_listening(self) -> bool:
        return self._stream is not None

    def stop_listening(self) -> None:
        """Arrete la session d'ecoute courante (sans effet s'il n'y en a pas)."""
        stream, task = self._stream, self._listen_task
        self._stream = None
        self._listen_task = None
        if stream is not None:
            stream.stop()
            stream.close()
            logger.info("Écoute arrêtée")
        if task is not None:
            task.cancel()

    async def listen(self, on_result: ResultCallback, options: ListenOptions, on_error: Optional[ErrorCallback] = None) -> None:
        """
        Demarre l'ecoute en continu et rend la main des que le flux tourne.

        on_result recoit un StreamResult par fenetre retenue; on_error recoit
        les echecs d'evaluation et les alertes du flux (StreamError), qui
        n'interrompent pas la session.
        """
        if self.head is None:
            raise NoModelError("Le modèle n'est pas entraîné.")
        if self.is_listening():
            raise BusyError("Déjà en écoute.")

        loop = asyncio.get_running_loop()
        source = self.base.source
        classifier = StreamingClassifier(
            embed=self.base.embedder.embed_waveform,
            score=self.head.scores,
            labels=self.head.labels,
            window_len=self.base.embedder.audio_len,
            source_sr=source.sample_rate,
            options=options,
            target_sr=self.base.audio_config.target_sr,
        )
        pending: asyncio.Queue = asyncio.Queue(maxsize=MAX_PENDING_WINDOWS)

        def enqueue(window: np.ndarray) -> None:
            if pending.full():
                pending.get_nowait()
                logger.debug("Fenêtre abandonnée (évaluation trop lente)")
            pending.put_nowait(window)

        def on_block(block: np.ndarray) -> None:
            # Thread audio: on ne fait que remplir la fenetre.
            window = classifier.push(block)
            if window is not None:
                loop.call_soon_threadsafe(enqueue, window)

        def report_status(status: str) -> None:
            if self._stream is stream and on_error is not None:
                on_error(StreamError(f"Flux micro: {status}"))

        def on_status(status: str) -> None:
            loop.call_soon_threadsafe(report_status, status)

        # Des alertes peuvent arriver avant la fin de l'ouverture.
        stream = None
        stream = await asyncio.to_thread(source.open_stream, on_block, classifier.source_hop, on_status)
        stream.start()
        self._stream = stream
        self._listen_task = asyncio.create_task(self._consume(pending, classifier, on_result, on_error))
        logger.info("Écoute démarrée (%d labels, hop=%d)", len(classifier.labels), classifier.hop)

    async def _consume(self, pending: asyncio.Queue, classifier: StreamingClassifier, on_result, on_error) -> None:
        while True:
            window = await pending.get()
            try:
                result = await asyncio.to_thread(classifier.evaluate, window)
            except Exception as err:
                logger.error("Évaluation de fenêtre échouée", exc_info=True)
                if on_error is not None:
                    on_error(err)
                continue
            if result is None:
                continue
            try:
                on_result(result)
            except Exception:
                logger.exception("Callback de résultat en erreur")

    # --- Exemples ---------------------------------------------------------

    async def collect_example(self, label: Optional[Label]) -> int:
        """
        Enregistre un exemple au micro et le range sous label.

        Retourne le nombre d'exemples du label. Un label absent est refuse.
        """
        if label is None:
            raise ValueError("collect_example() exige un label.")
        if self.is_listening():
            raise BusyError("Impossible de collecter pendant l'écoute.")
        source = self.base.source
        samples = await asyncio.to_thread(source.record, self.base.audio_config.example_duration_s)
        capture_dir = self.base.audio_config.capture_dir
        if capture_dir is not None:
            path = await asyncio.to_thread(audio.save_wav, Path(capture_dir) / str(label), str(label), samples, source.sample_rate)
            logger.debug("Exemple archivé: %s", path)
        embedding = await asyncio.to_thread(self.base.embed_example, samples, source.sample_rate)
        count = self.store.add(label, embedding)
        logger.info("Exemple collecté pour %r (%d au total)", label, count)
        return count

    async def import_examples(self, label: Label, directory: Path, augmentations: int = 0, seed: Optional[int] = None) -> int:
        """
        Ajoute chaque WAV de directory (et ses augmentations) sous label.
        """
        if label is None:
            raise ValueError("import_examples() exige un label.")
        rng = np.random.default_rng(seed)
        embedder = self.base.embedder

        def embed_all() -> list[np.ndarray]:
            waveforms = iter_example_waveforms(
                Path(directory),
                target_len=embedder.audio_len,
                augmentations=augmentations,
                rng=rng,
                target_sr=self.base.audio_config.target_sr,
            )
            return [embedder.embed_waveform(w) for w in waveforms]

        embeddings = await asyncio.to_thread(embed_all)
        for embedding in embeddings:
            self.store.add(label, embedding)
        logger.info("%d exemples importés pour %r depuis %s", len(embeddings), label, directory)
        return len(embeddings)

    def count_examples(self) -> dict[Label, int]:
        return self.store.count()

    def word_labels(self) -> list[Label]:
        """Labels du modele entraine (vide tant qu'il ne l'est pas)."""
        return list(self.head.labels) if self.head is not None else []

    # --- Entrainement -----------------------------------------------------

    async def train(self, config: TransferTrainConfig) -> SoftmaxHead:
        if not len(self.store):
            raise InsufficientDataError("Aucun exemple collecté.")
        if self.is_listening():
            raise BusyError("Impossible d'entraîner pendant l'écoute.")

        labels = self.store.labels()
        embeddings, targets = self.store.to_arrays(labels)
        trainer = HeadTrainer(embeddings, targets, labels, config.training)
        for epoch in range(int(config.training.epochs)):
            logs = await asyncio.to_thread(trainer.run_epoch)
            if config.on_epoch_end is not None:
                await _maybe_await(config.on_epoch_end(epoch, logs))

        self.head = trainer.head
        self.epochs_trained = trainer.epoch
        if config.on_train_end is not None:
            await _maybe_await(config.on_train_end())
        return self.head

    # --- Persistance ------------------------------------------------------

    def get_metadata(self) -> dict[str, Any]:
        return {
            "model_name": self.name,
            "word_labels": self.word_labels(),
            "audio_len": int(self.base.embedder.audio_len),
            "sample_rate": int(self.base.audio_config.target_sr),
            "example_counts": [[label, n] for label, n in self.store.count().items()],
            "epochs": int(self.epochs_trained),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def save(self, handler: SaveHandler) -> Any:
        """
        Passe (model.json, metadata.json) au handler et retourne son resultat.
        """
        if self.head is None:
            raise NoModelError("Le modèle n'est pas entraîné.")
        return await _maybe_await(handler(self.head.to_artifact(), self.get_metadata()))