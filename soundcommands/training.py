"""
Tete de classification entrainee par transfert sur les embeddings figes.

Pourquoi: fournir un apprentissage simple, interpretable et portable, sans
framework de deep learning.
Comment: normalisation des embeddings, regression logistique multinomiale
(softmax) par descente de gradient en mini-batchs, une epoque a la fois pour
pouvoir rendre compte de la progression.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np

from soundcommands.config import TrainingConfig
from soundcommands.examples import Label

MODEL_FORMAT = "soundcommands-softmax-head"
MODEL_FORMAT_VERSION = 1


def softmax(logits: np.ndarray) -> np.ndarray:
    """Softmax stable numeriquement, sur le dernier axe."""
    shifted = logits - np.max(logits, axis=-1, keepdims=True)
    exp = np.exp(shifted)
    return exp / np.sum(exp, axis=-1, keepdims=True)


def cross_entropy(probs: np.ndarray, targets: np.ndarray) -> float:
    picked = probs[np.arange(targets.size), targets]
    return float(-np.mean(np.log(picked + 1e-12)))


@dataclass
class SoftmaxHead:
    """
    Regression logistique multinomiale avec normalisation des embeddings.

    Pourquoi: les embeddings ont des distributions variables selon le jeu de
    donnees; la normalisation (moyenne/ecart-type) stabilise l'apprentissage.
    Comment: on stocke W (D, C), b (C,), mean, std et les labels des classes.
    """

    weights: np.ndarray
    bias: np.ndarray
    mean: np.ndarray
    std: np.ndarray
    labels: list[Label]

    @property
    def input_dim(self) -> int:
        return int(self.weights.shape[0])

    def _logits(self, embeddings: np.ndarray) -> np.ndarray:
        xs = (embeddings - self.mean) / self.std
        return xs @ self.weights + self.bias

    def predict_batch(self, embeddings: np.ndarray) -> np.ndarray:
        """Probabilites (N, C) pour un lot d'embeddings (N, D)."""
        return softmax(self._logits(np.atleast_2d(embeddings))).astype(np.float32)

    def scores(self, embedding: np.ndarray) -> np.ndarray:
        """Probabilites (C,) pour un embedding 1D."""
        return self.predict_batch(np.asarray(embedding, dtype=np.float32).reshape(1, -1))[0]

    def to_artifact(self) -> dict[str, Any]:
        """
        Representation JSON du modele (topologie + poids).
        """
        return {
            "format": MODEL_FORMAT,
            "version": MODEL_FORMAT_VERSION,
            "topology": {"input_dim": self.input_dim, "num_classes": len(self.labels)},
            "weights": {
                "W": self.weights.astype(np.float32).tolist(),
                "b": self.bias.astype(np.float32).tolist(),
                "mean": self.mean.astype(np.float32).tolist(),
                "std": self.std.astype(np.float32).tolist(),
            },
        }

    @classmethod
    def from_artifact(cls, artifact: dict[str, Any], labels: Sequence[Label]) -> "SoftmaxHead":
        """
        Reconstruit la tete a partir de model.json et des labels de metadata.json.

        Leve ValueError si les deux fichiers ne correspondent pas.
        """
        if artifact.get("format") != MODEL_FORMAT:
            raise ValueError(f"Format de modèle inconnu: {artifact.get('format')!r}")
        weights = artifact["weights"]
        head = cls(
            weights=np.asarray(weights["W"], dtype=np.float32),
            bias=np.asarray(weights["b"], dtype=np.float32),
            mean=np.asarray(weights["mean"], dtype=np.float32),
            std=np.asarray(weights["std"], dtype=np.float32),
            labels=list(labels),
        )
        topology = artifact.get("topology", {})
        if head.weights.ndim != 2 or head.weights.shape[1] != len(head.labels):
            raise ValueError(f"Poids {head.weights.shape} incompatibles avec {len(head.labels)} labels")
        if topology.get("num_classes", len(head.labels)) != len(head.labels):
            raise ValueError("model.json et metadata.json ne correspondent pas")
        if head.bias.shape != (len(head.labels),) or head.mean.shape != (head.input_dim,):
            raise ValueError("Dimensions de biais/normalisation incohérentes")
        return head


class HeadTrainer:
    """
    Entraine une SoftmaxHead epoque par epoque.

    Pourquoi: l'appelant rend la main a la boucle asyncio entre deux epoques
    et publie la perte de chacune.
    Comment: statistiques de normalisation figees au depart, puis mini-batchs
    melanges a chaque epoque (log-loss + L2).
    """

    def __init__(self, embeddings: np.ndarray, targets: np.ndarray, labels: Sequence[Label], config: TrainingConfig):
        if embeddings.shape[0] == 0:
            raise ValueError("Aucun exemple à entraîner.")
        self.config = config
        self.targets = targets.astype(np.int64)
        self.rng = np.random.default_rng(config.seed)

        mean = embeddings.mean(axis=0).astype(np.float32)
        std = (embeddings.std(axis=0) + 1e-6).astype(np.float32)
        self.normalized = ((embeddings - mean) / std).astype(np.float32)

        n_classes = len(labels)
        self.head = SoftmaxHead(
            weights=np.zeros((embeddings.shape[1], n_classes), dtype=np.float32),
            bias=np.zeros((n_classes,), dtype=np.float32),
            mean=mean,
            std=std,
            labels=list(labels),
        )
        self.epoch = 0

    def run_epoch(self) -> dict[str, float]:
        """
        Une passe complete sur les exemples; retourne {"loss", "acc"}.
        """
        n = self.normalized.shape[0]
        n_classes = len(self.head.labels)
        order = self.rng.permutation(n)
        batch_size = max(int(self.config.batch_size), 1)
        lr = float(self.config.learning_rate)
        l2 = float(self.config.l2)

        for start in range(0, n, batch_size):
            idx = order[start:start + batch_size]
            xs = self.normalized[idx]
            probs = softmax(xs @ self.head.weights + self.head.bias)
            # Gradient de la log-loss: p - onehot(y).
            probs[np.arange(idx.size), self.targets[idx]] -= 1.0
            grad_w = xs.T @ probs / idx.size + l2 * self.head.weights
            grad_b = probs.mean(axis=0)
            self.head.weights -= (lr * grad_w).astype(np.float32)
            self.head.bias -= (lr * grad_b).astype(np.float32)

        probs = softmax(self.normalized @ self.head.weights + self.head.bias)
        loss = cross_entropy(probs, self.targets) if n_classes > 1 else 0.0
        loss += 0.5 * l2 * float(np.sum(self.head.weights * self.head.weights))
        acc = float(np.mean(np.argmax(probs, axis=1) == self.targets))
        self.epoch += 1
        return {"loss": float(loss), "acc": acc}


def top_k_classes(scores: np.ndarray, k: int, labels: Sequence[Label]) -> list[tuple[Label, float]]:
    """
    Les k classes les plus probables, par confiance decroissante.

    k est borne a [0, len(labels)]; a egalite l'ordre des labels est conserve.
    """
    scores = np.asarray(scores, dtype=np.float32).reshape(-1)
    if scores.size != len(labels):
        raise ValueError(f"{scores.size} scores pour {len(labels)} labels")
    k = max(0, min(int(k), len(labels)))
    order = np.argsort(-scores, kind="stable")[:k]
    return [(labels[i], float(scores[i])) for i in order]
