"""Module de retry avec backoff exponentiel pour opérations asynchrones.

Utilisé pour les écritures dans le Token Store et les appels au service des
dossiers patients: seules les erreurs transitoires (connexion perdue, timeout)
déclenchent une nouvelle tentative. Les lectures sur le chemin de résolution
de session ne sont jamais rejouées.
"""

import logging
from collections.abc import Callable
from typing import Any

from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)


async def retry_async_operation(
    operation: Callable[..., Any],
    *args: Any,
    max_attempts: int = 3,
    min_wait_seconds: float = 0.1,
    max_wait_seconds: float = 2,
    exceptions: tuple[type[Exception], ...] = (Exception,),
    **kwargs: Any,
) -> Any:
    """
    Exécute une opération async avec retry et backoff exponentiel.

    Le nombre de tentatives vient de la configuration de l'appelant.

    Args:
        operation: Fonction async à exécuter
        *args: Arguments positionnels pour operation
        max_attempts: Nombre maximum de tentatives
        min_wait_seconds: Attente minimale entre tentatives (secondes)
        max_wait_seconds: Attente maximale entre tentatives (secondes)
        exceptions: Tuple des exceptions qui déclenchent un retry
        **kwargs: Arguments keyword pour operation

    Returns:
        Résultat de l'opération

    Raises:
        Exception: La dernière exception si toutes les tentatives échouent
    """
    attempt = 0

    async for attempt_state in AsyncRetrying(
        retry=retry_if_exception_type(exceptions),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(min=min_wait_seconds, max=max_wait_seconds),
        reraise=True,
    ):
        with attempt_state:
            attempt += 1
            if attempt > 1:
                logger.info(f"Retry attempt {attempt}/{max_attempts} for {operation.__name__}")

            return await operation(*args, **kwargs)

    # Jamais atteint (reraise=True lève l'exception), requis pour la vérification de type
    raise RetryError("Max retries exceeded")
