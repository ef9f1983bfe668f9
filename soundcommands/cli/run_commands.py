"""
CLI de reconnaissance en continu a partir d'un modele sauvegarde.

Pourquoi: tester un modele entraine directement au micro.
Comment: load() puis classify() avec un callback qui imprime le top-k.
"""

from __future__ import annotations

import argparse
import asyncio
from typing import Optional

from soundcommands.config import AudioConfig
from soundcommands.extractor import ClassResult, SoundCommandsExtractor
from soundcommands.log import setup_logging
from soundcommands.recognizer import BaseRecognizer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Reconnaissance de commandes sonores en temps réel.")
    parser.add_argument("--model", default="soundcommands_model", help="Dossier contenant model.json et metadata.json")
    parser.add_argument("--mic", type=int, default=None, help="Index du micro (voir soundcommands-detect-mic)")
    parser.add_argument("--samplerate", type=int, default=16000, help="Fréquence d'échantillonnage du micro")
    parser.add_argument("--top-k", type=int, default=3, help="Nombre de classes affichées")
    parser.add_argument("--threshold", type=float, default=0.0, help="Score minimal pour afficher un résultat")
    parser.add_argument("--overlap", type=float, default=0.5, help="Recouvrement entre fenêtres [0, 1)")
    parser.add_argument("--suppression-ms", type=float, default=0.0, help="Silence après un résultat (ms)")
    parser.add_argument("--log-level", default="WARNING")
    return parser


def format_results(results: list[ClassResult]) -> str:
    return " | ".join(f"{r.label}={r.confidence:.3f}" for r in results)


def print_result(error: Optional[BaseException], results: Optional[list[ClassResult]]) -> None:
    if error is not None:
        print(f"✗ {error}", flush=True)
        return
    print(format_results(results), flush=True)


async def run(args: argparse.Namespace) -> None:
    audio_config = AudioConfig(sample_rate=args.samplerate, device=args.mic)
    extractor = await SoundCommandsExtractor.create(base_model=BaseRecognizer(audio_config=audio_config))
    await extractor.load(args.model)
    extractor.options = extractor.options.merged(
        {
            "probability_threshold": args.threshold,
            "overlap_factor": args.overlap,
            "suppression_time_ms": args.suppression_ms,
        }
    )
    await extractor.classify(top_k=args.top_k, callback=print_result)
    print(f"Écoute de {', '.join(map(str, extractor.word_labels))} (Ctrl+C pour quitter)")
    try:
        # Boucle principale: les resultats arrivent par le callback.
        await asyncio.Event().wait()
    finally:
        extractor.stop_listening()


def main() -> None:
    args = build_parser().parse_args()
    setup_logging(args.log_level)
    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
