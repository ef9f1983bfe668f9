"""
Apprentissage par transfert de commandes sonores et reconnaissance en continu.

Les sous-modules exposent les briques de base :
- audio : utilitaires d'E/S et de prétraitement audio.
- embedder : modèle de base (graphes ONNX openWakeWord) produisant les embeddings.
- examples : stockage des exemples collectés par label.
- training : tête softmax entraînée époque par époque, top-k.
- inference : fenêtre glissante et évaluation en continu.
- recording : accès micro (sounddevice) et écriture WAV.
- recognizer : modèle de base et modèle de transfert (protocole séquencé).
- persistence : paire model.json / metadata.json.
- extractor : cycle de vie collecte -> entraînement -> écoute.

Comment l'utiliser (vue rapide):
- télécharger le modèle de base avec soundcommands-install-models
- collecter/entraîner/sauvegarder via soundcommands-record --labels oui,non
- tester en temps réel avec soundcommands-run --model soundcommands_model
"""

__all__ = [
    "audio",
    "callbacks",
    "config",
    "dataset",
    "embedder",
    "errors",
    "examples",
    "extractor",
    "inference",
    "persistence",
    "recognizer",
    "recording",
    "training",
]
