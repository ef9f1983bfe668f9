"""
CLI interactive: collecter des exemples, entrainer, sauvegarder.

Pourquoi: construire un modele de commandes sonores sans ecrire de code.
Comment: une session texte sur SoundCommandsExtractor; chaque ligne choisit
un label a enregistrer, ou une action (t = entrainer, s = sauvegarder).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Optional

from soundcommands.config import AudioConfig, TrainingConfig
from soundcommands.errors import SoundCommandsError
from soundcommands.extractor import SoundCommandsExtractor
from soundcommands.log import setup_logging
from soundcommands.recognizer import BaseRecognizer

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Collecter des sons, entraîner et sauvegarder un modèle.")
    parser.add_argument("--labels", required=True, help="Labels séparés par des virgules (ex: oui,non,clap)")
    parser.add_argument("--mic", type=int, default=None, help="Index du micro (voir soundcommands-detect-mic)")
    parser.add_argument("--samplerate", type=int, default=16000, help="Fréquence d'échantillonnage du micro")
    parser.add_argument("--duration", type=float, default=1.0, help="Durée d'un exemple (secondes)")
    parser.add_argument("--epochs", type=int, default=TrainingConfig.epochs, help="Nombre d'époques")
    parser.add_argument("--lr", type=float, default=TrainingConfig.learning_rate, help="Taux d'apprentissage")
    parser.add_argument("--out", default="soundcommands_model", help="Dossier de sortie (model.json + metadata.json)")
    parser.add_argument(
        "--import",
        dest="imports",
        action="append",
        default=[],
        metavar="LABEL=DOSSIER",
        help="Importer les WAV d'un dossier comme exemples d'un label (répétable)",
    )
    parser.add_argument("--augment", type=int, default=0, help="Augmentations par WAV importé")
    parser.add_argument("--save-dir", default=None, help="Archiver chaque exemple capturé en WAV (un dossier par label)")
    parser.add_argument("--log-level", default="INFO")
    return parser


def parse_labels(raw: str) -> list[str]:
    labels = [part.strip() for part in raw.split(",") if part.strip()]
    if not labels:
        raise SystemExit("--labels ne contient aucun label.")
    return labels


def parse_import(spec: str) -> tuple[str, Path]:
    label, sep, directory = spec.partition("=")
    if not sep or not label or not directory:
        raise SystemExit(f"--import attend LABEL=DOSSIER, reçu: {spec!r}")
    return label, Path(directory)


def resolve_command(line: str, labels: list[str]) -> Optional[str]:
    """
    Traduit une saisie en label: numero (1..n) ou nom exact.
    """
    line = line.strip()
    if line.isdigit() and 1 <= int(line) <= len(labels):
        return labels[int(line) - 1]
    return line if line in labels else None


def print_progress(loss: Optional[str]) -> None:
    print("  entraînement terminé" if loss is None else f"  loss={loss}", flush=True)


async def run_session(args: argparse.Namespace) -> None:
    labels = parse_labels(args.labels)
    audio_config = AudioConfig(
        sample_rate=args.samplerate,
        example_duration_s=args.duration,
        device=args.mic,
        capture_dir=Path(args.save_dir) if args.save_dir else None,
    )
    training_config = TrainingConfig(epochs=args.epochs, learning_rate=args.lr)
    extractor = await SoundCommandsExtractor.create(
        base_model=BaseRecognizer(audio_config=audio_config),
        training_config=training_config,
    )
    extractor.classification()

    for spec in args.imports:
        label, directory = parse_import(spec)
        count = await extractor.import_examples(label, directory, augmentations=args.augment)
        print(f"✓ {count} exemples importés pour '{label}'")

    print("Labels:", ", ".join(f"{i}={name}" for i, name in enumerate(labels, start=1)))
    print("numéro ou label + Entrée : enregistrer un exemple")
    print("t + Entrée : entraîner")
    print("s + Entrée : sauvegarder")
    print("q + Entrée : quitter\n")

    while True:
        line = (await asyncio.to_thread(input, "> ")).strip()
        if line == "q":
            break
        try:
            if line == "t":
                await extractor.train(print_progress)
            elif line == "s":
                model_path, metadata_path = await extractor.save(args.out)
                print(f"✓ Sauvegardé {model_path} et {metadata_path}\n")
            else:
                label = resolve_command(line, labels)
                if label is None:
                    print(f"Commande inconnue: {line!r}")
                    continue
                await extractor.add_example(label)
                print(f"✓ {label}: {extractor.examples_count.get(label, 0)} exemple(s)\n")
        except SoundCommandsError as err:
            print(f"✗ {err}")


def main() -> None:
    args = build_parser().parse_args()
    setup_logging(args.log_level)
    asyncio.run(run_session(args))


if __name__ == "__main__":
    main()
