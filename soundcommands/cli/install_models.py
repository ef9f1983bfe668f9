"""
Telecharge les graphes openWakeWord utilises comme modele de base.

Pourquoi: SoundEmbedder.load() echoue (ModelLoadError) tant que
melspectrogram.onnx et embedding_model.onnx ne sont pas presents localement.
Comment: delegation a openwakeword.utils.download_models, puis verification.
"""

from __future__ import annotations

from openwakeword.utils import download_models

from soundcommands.embedder import EMB_MODEL_NAME, MEL_MODEL_NAME, resolve_model_path


def main() -> None:
    download_models()
    for name in (MEL_MODEL_NAME, EMB_MODEL_NAME):
        print(f"✓ {resolve_model_path(name)}")
    print("Téléchargement terminé.")


if __name__ == "__main__":
    main()
