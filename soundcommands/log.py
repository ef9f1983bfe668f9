"""
Configuration du logging pour les CLI.

Pourquoi: les modules de la bibliotheque utilisent logging.getLogger(__name__)
et laissent la configuration au point d'entree.
Comment: un handler console, un handler fichier optionnel.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"


def setup_logging(level: str = "INFO", log_file: Optional[Path] = None) -> logging.Logger:
    """
    Configure le logger racine et le retourne.

    Appels repetes: les handlers precedents sont remplaces, pas empiles.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # sounddevice/onnxruntime sont bavards en DEBUG.
    logging.getLogger("onnxruntime").setLevel(logging.WARNING)
    return root
