"""
Exceptions du package.

Pourquoi: distinguer les violations de preconditions (a corriger par
l'appelant) des echecs des collaborateurs (modele, micro, fichiers).
"""

from __future__ import annotations


class SoundCommandsError(Exception):
    """Base commune de toutes les erreurs soundcommands."""


class ModelLoadError(SoundCommandsError):
    """Le modele de base ou un modele sauvegarde n'a pas pu etre charge."""


class InsufficientDataError(SoundCommandsError):
    """Entrainement demande sans aucun exemple collecte."""


class ModeError(SoundCommandsError):
    """Operation qui exige le mode classifieur alors qu'il n'est pas actif."""


class NoModelError(SoundCommandsError):
    """Aucun modele (entraine) a sauvegarder ou a interroger."""


class StreamError(SoundCommandsError):
    """Resultat de flux inexploitable ou echec de l'ecoute en continu."""


class BusyError(SoundCommandsError):
    """Une collecte ou un entrainement est deja en cours."""
