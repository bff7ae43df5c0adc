"""Construction explicite du client Redis partagé par les stores."""

import logging

import redis.asyncio as redis

logger = logging.getLogger(__name__)


def create_redis_client(url: str, db: int = 0, socket_timeout: float = 2.0) -> redis.Redis:
    """
    Crée le client Redis au démarrage de l'application.

    Le client n'est pas connecté tant qu'aucune commande n'est envoyée; une
    indisponibilité de Redis au démarrage ne bloque donc pas le service, elle
    se traduit par des résolutions ``store_unavailable``.

    Args:
        url: URL Redis (ex: redis://localhost:6379)
        db: Numéro de base Redis
        socket_timeout: Timeout des opérations et de la connexion, en secondes

    Returns:
        Client Redis async avec décodage des réponses en str
    """
    client = redis.from_url(
        url,
        db=db,
        decode_responses=True,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
    )
    logger.info(f"Redis client créé: {url} (db={db})")
    return client


async def close_redis_client(client: redis.Redis) -> None:
    """Ferme le client Redis proprement."""
    await client.aclose()
    logger.info("Redis client fermé")
