"""FastAPI dependencies for shared services and caller identity.

Services are built once in the application lifespan and stored on
app.state; these dependencies read them back per request.
"""

from typing import Annotated, Callable, Optional

from fastapi import Depends, Header, HTTPException, Request, status

from animegen.core.config import Settings
from animegen.services.rate_limiter import FixedWindowRateLimiter, hash_ip
from animegen.services.storage.s3_client import S3BlobStore
from animegen.uow import UnitOfWork
from animegen.workers.generation_job_worker import GenerationContext


def get_settings(request: Request) -> Settings:
    """Get application settings from app state."""
    return request.app.state.settings


def get_uow_factory(request: Request) -> Callable[[], UnitOfWork]:
    """Get UnitOfWork factory from app state.

    Args:
        request: FastAPI Request object (contains app.state)

    Returns:
        UnitOfWork factory function from app lifespan

    Example:
        >>> @router.get("/endpoint")
        >>> async def endpoint(uow_factory=Depends(get_uow_factory)):
        ...     async with await uow_factory() as uow:
        ...         await uow.images.get_by_id(image_id)
    """
    return request.app.state.uow_factory


def get_rate_limiter(request: Request) -> FixedWindowRateLimiter:
    return request.app.state.rate_limiter


def get_blob_store(request: Request) -> S3BlobStore:
    return request.app.state.blob_store


def get_generation_context(request: Request) -> GenerationContext:
    """Get the collaborators handed to background job processing."""
    return request.app.state.generation_context


def get_current_user_id(
    x_user_id: Annotated[Optional[str], Header(alias="X-User-Id")] = None,
) -> Optional[str]:
    """Caller's user id from the identity header, or None for anonymous callers.

    The header is set by the trusted session layer in front of this service.
    """
    if x_user_id is None:
        return None
    x_user_id = x_user_id.strip()
    return x_user_id or None


def require_user_id(user_id: Optional[str] = Depends(get_current_user_id)) -> str:
    """Caller's user id; 401 when the identity header is missing."""
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required"
        )
    return user_id


def get_client_ip(request: Request) -> str:
    """Client IP, preferring the first X-Forwarded-For hop."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client is not None:
        return request.client.host
    return "unknown"


def get_client_ip_hash(
    client_ip: str = Depends(get_client_ip),
    settings: Settings = Depends(get_settings),
) -> str:
    """Salted hash of the client IP. Raw IPs are never stored."""
    return hash_ip(client_ip, settings.ip_hash_salt)


def get_public_base_url(request: Request, settings: Settings = Depends(get_settings)) -> str:
    """Absolute origin used for image URLs.

    PUBLIC_BASE_URL wins when configured; otherwise the request's own origin.
    """
    if settings.public_base_url:
        return settings.public_base_url.rstrip("/")
    return str(request.base_url).rstrip("/")


def serve_url(base_url: str, storage_key: str) -> str:
    """Absolute URL of the blob-serving route for a storage key."""
    return f"{base_url}/v1/serve/{storage_key}"
