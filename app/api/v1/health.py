import logging
from typing import Literal

import redis.asyncio as redis
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from redis.exceptions import RedisError

from app.core.dependencies import get_redis_client
from app.core.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    status: Literal["ok", "error"] = Field(..., description="The status of the health check")


@router.get("/health", tags=["health"], response_model=HealthResponse)
async def health(client: redis.Redis = Depends(get_redis_client)):
    try:
        await client.ping()
        return HealthResponse(status="ok")
    except RedisError as e:
        logger.error(f"Error checking health: {e}")
        raise StoreUnavailableError(detail="Credential store unreachable") from None
