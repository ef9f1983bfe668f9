"""
Pont entre les coroutines et les callbacks "(erreur, resultat)".
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
Callback = Callable[[Optional[BaseException], Any], Any]


async def call_callback(awaitable: Awaitable[T], callback: Optional[Callback] = None) -> Optional[T]:
    """
    Attend awaitable et publie son issue.

    Sans callback, le resultat est retourne et l'exception propagee. Avec un
    callback, l'issue passe uniquement par lui: callback(None, resultat) ou
    callback(erreur, None), et l'exception n'est pas relancee.
    """
    if callback is None:
        return await awaitable
    try:
        result = await awaitable
    except Exception as err:
        logger.debug("Opération échouée, erreur transmise au callback: %s", err)
        callback(err, None)
        return None
    callback(None, result)
    return result
