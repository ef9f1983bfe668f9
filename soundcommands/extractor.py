"""
Extracteur de commandes sonores: cycle de vie collecte / entrainement / ecoute.

Pourquoi: un seul objet a manipuler pour apprendre de nouveaux sons par
transfert puis les reconnaitre en continu, avec des garanties claires sur ce
qui peut tourner en meme temps (jamais collecte et ecoute ensemble).
Comment: un mode d'usage explicite (UNSET / CLASSIFIER) et une petite machine
a etats (IDLE, COLLECTING, TRAINING, LISTENING) devant un TransferRecognizer.

Exemple:
    extractor = await SoundCommandsExtractor.create()
    extractor.classification()
    for _ in range(3):
        await extractor.add_example("oui")
        await extractor.add_example("non")
    await extractor.train(print)
    await extractor.classify(top_k=2, callback=on_result)
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from soundcommands import persistence
from soundcommands.callbacks import Callback, call_callback
from soundcommands.config import AudioConfig, TrainingConfig
from soundcommands.errors import (
    BusyError,
    InsufficientDataError,
    ModeError,
    NoModelError,
    StreamError,
)
from soundcommands.examples import Label
from soundcommands.inference import ListenOptions, StreamResult
from soundcommands.recognizer import BaseRecognizer, TransferRecognizer, TransferTrainConfig, with_epochs
from soundcommands.training import top_k_classes

logger = logging.getLogger(__name__)

TRANSFER_MODEL_NAME = "transfer"

ProgressCallback = Callable[[Optional[str]], Any]


class UsageMode(enum.Enum):
    UNSET = "unset"
    CLASSIFIER = "classifier"


class ExtractorState(enum.Enum):
    IDLE = "idle"
    COLLECTING = "collecting"
    TRAINING = "training"
    LISTENING = "listening"


@dataclass(frozen=True)
class ClassResult:
    """Une classe reconnue et sa confiance."""

    label: Label
    confidence: float


class SoundCommandsExtractor:
    """
    Apprentissage par transfert de commandes sonores et reconnaissance en continu.

    Une seule operation a la fois: collecte et entrainement refusent de se
    chevaucher (BusyError), et toute nouvelle operation arrete d'abord
    l'ecoute en cours.
    """

    def __init__(
        self,
        callback: Optional[Callback] = None,
        *,
        base_model: Optional[BaseRecognizer] = None,
        audio_config: Optional[AudioConfig] = None,
        training_config: Optional[TrainingConfig] = None,
    ):
        self.base_model = base_model or BaseRecognizer(audio_config=audio_config)
        self.training_config = training_config or TrainingConfig()
        self.model: Optional[TransferRecognizer] = None
        self.usage_mode = UsageMode.UNSET
        self.state = ExtractorState.IDLE
        self.options = ListenOptions()
        self.word_labels: list[Label] = []
        self._callback = callback
        self._ready: Optional[asyncio.Future] = None
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # Hors boucle: chargement differe au premier acces a ready.
            pass
        else:
            self._schedule_load()

    @classmethod
    async def create(cls, callback: Optional[Callback] = None, **kwargs) -> "SoundCommandsExtractor":
        extractor = cls(callback, **kwargs)
        return await extractor.ready

    # --- Chargement -------------------------------------------------------

    @property
    def ready(self) -> asyncio.Future:
        """
        Future resolue avec l'extracteur une fois le modele de base charge.

        Le chargement demarre des la construction si une boucle tourne, sinon
        au premier acces (depuis une coroutine). Il n'est tente qu'une fois;
        en cas d'echec tous les awaiters recoivent ModelLoadError.
        """
        if self._ready is None:
            self._schedule_load()
        return self._ready

    def _schedule_load(self) -> None:
        self._ready = asyncio.ensure_future(self._load_model())
        if self._callback is not None:
            self._ready.add_done_callback(self._report_ready)

    async def _load_model(self) -> "SoundCommandsExtractor":
        await self.base_model.ensure_model_loaded()
        return self

    def _report_ready(self, future: asyncio.Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            self._callback(error, None)
        else:
            self._callback(None, future.result())

    # --- Etats ------------------------------------------------------------

    @property
    def is_predicting(self) -> bool:
        return self.state is ExtractorState.LISTENING

    @property
    def examples_count(self) -> dict[Label, int]:
        return self.model.count_examples() if self.model is not None else {}

    def _stop_session(self) -> None:
        if self.model is not None and self.model.is_listening():
            self.model.stop_listening()
        if self.state is ExtractorState.LISTENING:
            self.state = ExtractorState.IDLE

    def _enter(self, target: ExtractorState) -> None:
        """
        Transition gardee vers target.

        COLLECTING et TRAINING sont exclusifs; LISTENING est arrete avant
        toute autre transition, y compris un redemarrage de l'ecoute.
        """
        if self.state in (ExtractorState.COLLECTING, ExtractorState.TRAINING):
            raise BusyError(f"Opération impossible: {self.state.value} en cours.")
        self._stop_session()
        self.state = target
        logger.debug("État: %s", target.value)

    def _leave(self) -> None:
        self.state = ExtractorState.IDLE

    def _require_classifier(self) -> TransferRecognizer:
        if self.usage_mode is not UsageMode.CLASSIFIER or self.model is None:
            raise ModeError("L'extracteur n'a pas été configuré en classifieur (appeler classification()).")
        return self.model

    def stop_listening(self) -> None:
        """Arrete l'ecoute en cours, s'il y en a une."""
        self._stop_session()

    # --- Configuration ----------------------------------------------------

    def classification(self, options: Union[Mapping[str, Any], ListenOptions, None] = None) -> "SoundCommandsExtractor":
        """
        Passe en mode classifieur avec un modele de transfert neuf.

        Remise a zero destructive: exemples, entrainement et labels du modele
        precedent sont abandonnes. options (dict ou ListenOptions) est fusionne
        dans les options d'ecoute; toute autre valeur est ignoree. Des options
        invalides levent une erreur avant toute remise a zero.
        """
        if self.state in (ExtractorState.COLLECTING, ExtractorState.TRAINING):
            raise BusyError(f"Opération impossible: {self.state.value} en cours.")

        new_options = self.options
        if isinstance(options, ListenOptions):
            options = asdict(options)
        if isinstance(options, Mapping):
            new_options = self.options.merged(options)
        elif options is not None:
            logger.warning("Options de classification ignorées (type %s)", type(options).__name__)
        model = self.base_model.create_transfer(TRANSFER_MODEL_NAME)

        self._stop_session()
        self.model = model
        self.usage_mode = UsageMode.CLASSIFIER
        self.word_labels = []
        self.options = new_options
        logger.info("Mode classifieur activé")
        return self

    # --- Collecte ---------------------------------------------------------

    async def add_example(self, label: Optional[Label] = None, callback: Optional[Callback] = None):
        """
        Capture un exemple au micro et le range sous label.

        Arrete l'ecoute en cours avant d'enregistrer. Retourne l'extracteur;
        avec un callback, l'issue passe par callback(erreur, extracteur).
        """
        return await call_callback(self._add_example(label), callback)

    async def _add_example(self, label: Optional[Label]) -> "SoundCommandsExtractor":
        model = self._require_classifier()
        self._enter(ExtractorState.COLLECTING)
        try:
            await model.collect_example(label)
        finally:
            self._leave()
        return self

    async def import_examples(self, label: Label, directory: Union[str, Path], augmentations: int = 0, seed: Optional[int] = None) -> int:
        """Ajoute les WAV de directory comme exemples de label."""
        model = self._require_classifier()
        self._enter(ExtractorState.COLLECTING)
        try:
            return await model.import_examples(label, Path(directory), augmentations=augmentations, seed=seed)
        finally:
            self._leave()

    # --- Entrainement -----------------------------------------------------

    def train(self, on_progress: Optional[ProgressCallback] = None, *, epochs: Optional[int] = None) -> Awaitable["SoundCommandsExtractor"]:
        """
        Entraine la tete de classification sur les exemples collectes.

        Les preconditions sont verifiees a l'appel, avant toute epoque:
        ModeError hors mode classifieur, InsufficientDataError sans exemple,
        BusyError si une collecte ou un entrainement est en cours. on_progress
        recoit la perte de chaque epoque ("0.12345") puis None a la fin.
        """
        model = self._require_classifier()
        if not sum(model.count_examples().values()):
            raise InsufficientDataError("Ajoutez des exemples avant l'entraînement !")
        if self.state in (ExtractorState.COLLECTING, ExtractorState.TRAINING):
            raise BusyError(f"Opération impossible: {self.state.value} en cours.")
        return self._train(model, on_progress, with_epochs(self.training_config, epochs))

    async def _train(self, model: TransferRecognizer, on_progress: Optional[ProgressCallback], training: TrainingConfig) -> "SoundCommandsExtractor":
        def on_epoch_end(epoch: int, logs: dict) -> Any:
            logger.info("Epoch %d: loss=%.5f, accuracy=%.3f", epoch, logs["loss"], logs["acc"])
            if on_progress is not None:
                return on_progress(f"{logs['loss']:.5f}")
            return None

        def on_train_end() -> Any:
            if on_progress is not None:
                return on_progress(None)
            return None

        self._enter(ExtractorState.TRAINING)
        try:
            await model.train(TransferTrainConfig(training=training, on_epoch_end=on_epoch_end, on_train_end=on_train_end))
        finally:
            self._leave()
        self.word_labels = list(model.word_labels())
        logger.info("Entraînement terminé: labels=%s", self.word_labels)
        return self

    # --- Classification ---------------------------------------------------

    async def classify(self, top_k: Optional[int] = None, callback: Optional[Callback] = None) -> None:
        """
        Demarre (ou redemarre) la classification en continu.

        callback(None, [ClassResult, ...]) est appele pour chaque fenetre
        retenue, avec au plus top_k classes par confiance decroissante;
        callback(StreamError, None) pour un resultat inexploitable ou un
        echec du flux. Rend la main une fois l'ecoute demarree.
        """
        model = self._require_classifier()
        if callback is None:
            raise TypeError("classify() exige un callback.")
        if not self.word_labels:
            raise NoModelError("Aucun modèle entraîné: appeler train() ou load() d'abord.")

        labels = list(self.word_labels)
        k = len(labels) if top_k is None else max(0, min(int(top_k), len(labels)))

        def on_result(result: StreamResult) -> None:
            self._deliver(result, k, labels, callback)

        def on_error(err: BaseException) -> None:
            if not isinstance(err, StreamError):
                err = StreamError(f"Erreur d'écoute: {err}")
            callback(err, None)

        self._enter(ExtractorState.LISTENING)
        try:
            await model.listen(on_result, self.options, on_error=on_error)
        except Exception as err:
            logger.error("Démarrage de l'écoute impossible", exc_info=True)
            self._leave()
            callback(StreamError(f"Erreur d'écoute: {err}"), None)

    @staticmethod
    def _deliver(result: Any, top_k: int, labels: list[Label], callback: Callback) -> None:
        scores = getattr(result, "scores", None)
        if scores is None:
            callback(StreamError(f"Aucun score dans le résultat: {result!r}"), None)
            return
        classes = [ClassResult(label, confidence) for label, confidence in top_k_classes(scores, top_k, labels)]
        callback(None, classes)

    # --- Persistance ------------------------------------------------------

    async def load(self, path: Union[str, Path, None] = None, callback: Optional[Callback] = None) -> Optional[TransferRecognizer]:
        """
        Charge un modele sauvegarde depuis path/model.json et path/metadata.json.

        Sans path: ne fait rien et retourne le modele courant (eventuellement None).
        """
        if path is None:
            return self.model
        return await call_callback(self._load(Path(path)), callback)

    async def _load(self, directory: Path) -> TransferRecognizer:
        await self.ready
        if self.state in (ExtractorState.COLLECTING, ExtractorState.TRAINING):
            raise BusyError(f"Opération impossible: {self.state.value} en cours.")

        model = self.base_model.load_transfer(*persistence.artifact_paths(directory))
        await model.ensure_model_loaded()

        self._stop_session()
        self.model = model
        self.usage_mode = UsageMode.CLASSIFIER
        self.word_labels = list(model.word_labels())
        logger.info("Modèle chargé depuis %s: labels=%s", directory, self.word_labels)
        return model

    def save(self, path: Union[str, Path] = ".", callback: Optional[Callback] = None) -> Awaitable[Optional[tuple[Path, Path]]]:
        """
        Ecrit model.json et metadata.json dans path.

        NoModelError est levee a l'appel s'il n'y a pas de modele entraine.
        Retourne les deux chemins; avec un callback, callback(None, chemins)
        apres les deux ecritures.
        """
        if self.model is None:
            raise NoModelError("Aucun modèle trouvé.")
        if not self.model.word_labels():
            raise NoModelError("Le modèle n'est pas entraîné.")
        return call_callback(self._save(self.model, Path(path)), callback)

    async def _save(self, model: TransferRecognizer, directory: Path) -> tuple[Path, Path]:
        async def handler(artifact: dict, metadata: dict) -> tuple[Path, Path]:
            return await asyncio.to_thread(persistence.save_artifacts, directory, artifact, metadata)

        return await model.save(handler)
