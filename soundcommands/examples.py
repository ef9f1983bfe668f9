"""
Stockage en memoire des exemples collectes, par label.

Pourquoi: l'entrainement a besoin de X/y, la logique de cycle de vie n'a
besoin que des compteurs par label.
Comment: dict label -> liste d'embeddings 1D, insertion ordonnee.
"""

from __future__ import annotations

from typing import Union

import numpy as np

Label = Union[str, int, float]


def label_sort_key(label: Label) -> tuple[str, str]:
    # Tri deterministe meme si str et nombres cohabitent.
    return (type(label).__name__, str(label))


class ExampleStore:
    """Exemples (embeddings) groupes par label."""

    def __init__(self) -> None:
        self._examples: dict[Label, list[np.ndarray]] = {}

    def __len__(self) -> int:
        return sum(len(items) for items in self._examples.values())

    def __contains__(self, label: object) -> bool:
        return label in self._examples

    def add(self, label: Label, embedding: np.ndarray) -> int:
        """
        Ajoute un embedding sous label et retourne le nouveau total du label.

        Tous les embeddings du store doivent avoir la meme dimension.
        """
        if label is None:
            raise ValueError("Un exemple doit avoir un label.")
        vector = np.asarray(embedding, dtype=np.float32).reshape(-1)
        dim = self.dimension
        if dim is not None and vector.size != dim:
            raise ValueError(f"Dimension d'embedding {vector.size} != {dim}")
        self._examples.setdefault(label, []).append(vector)
        return len(self._examples[label])

    def count(self) -> dict[Label, int]:
        """Nombre d'exemples par label."""
        return {label: len(items) for label, items in self._examples.items()}

    def labels(self) -> list[Label]:
        """Labels distincts, tries de maniere stable."""
        return sorted(self._examples, key=label_sort_key)

    @property
    def dimension(self) -> int | None:
        for items in self._examples.values():
            if items:
                return int(items[0].size)
        return None

    def clear(self) -> None:
        self._examples.clear()

    def to_arrays(self, labels: list[Label] | None = None) -> tuple[np.ndarray, np.ndarray]:
        """
        Empile les exemples en X (N, D) et y (N,) d'indices de classes.

        labels fixe l'ordre des classes (par defaut self.labels()).
        """
        labels = self.labels() if labels is None else labels
        if not len(self):
            raise ValueError("Aucun exemple dans le store.")
        xs: list[np.ndarray] = []
        ys: list[int] = []
        for index, label in enumerate(labels):
            for vector in self._examples.get(label, []):
                xs.append(vector)
                ys.append(index)
        return np.vstack(xs).astype(np.float32), np.array(ys, dtype=np.int64)
