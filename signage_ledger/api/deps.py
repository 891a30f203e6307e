from typing import Annotated, Optional
import logging
import secrets

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from signage_ledger.config import settings
from signage_ledger.core.permissions import Actor
from signage_ledger.database import get_db


logger = logging.getLogger(__name__)


async def verify_api_key(
    x_api_key: Annotated[Optional[str], Header()] = None,
) -> None:
    """Shared-secret check between the gateway and the engine, when configured."""
    if not settings.INTERNAL_API_KEY:
        return
    if not x_api_key or not secrets.compare_digest(x_api_key, settings.INTERNAL_API_KEY):
        logger.warning("Rejected request with missing or invalid API key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )


async def get_actor(
    _: Annotated[None, Depends(verify_api_key)],
    x_actor_id: Annotated[Optional[str], Header()] = None,
    x_actor_capabilities: Annotated[Optional[str], Header()] = None,
) -> Actor:
    """
    Build the calling actor from gateway headers.

    X-Actor-Id: actor id
    X-Actor-Capabilities: comma separated capability codes
    """
    if not x_actor_id or not x_actor_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing actor identity",
        )
    capabilities = (x_actor_capabilities or "").split(",")
    return Actor(x_actor_id.strip(), capabilities)


def require_capability(*required: str):
    """
    Dependency factory to require specific capabilities.

    Usage:
        @router.get("/", dependencies=[Depends(require_capability("ledger:read"))])
        async def list_entries():
            ...
    """
    async def capability_dependency(
        actor: Annotated[Actor, Depends(get_actor)],
    ) -> Actor:
        for capability in required:
            if not actor.has_capability(capability):
                logger.warning(f"Actor {actor.id} denied: missing {capability}")
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Permission denied. Required: {capability}"
                )
        return actor

    return capability_dependency


# Type aliases for cleaner endpoint signatures
DB = Annotated[AsyncSession, Depends(get_db)]
CurrentActor = Annotated[Actor, Depends(get_actor)]
