"""Image API endpoints.

- GET /v1/serve/{key} - Stream a stored image blob
- GET /v1/images/{image_id} - Image detail with tags, owner and like state
- POST /v1/images/remix - Submit a generation job derived from an existing image
- DELETE /v1/images/{image_id} - Delete an owned image
- GET /v1/user/{user_id} - Paginated gallery of a user's images

Private images are visible to their owner only; to everyone else they are
reported as not found.
"""

from datetime import datetime
from typing import Optional

import structlog
from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    HTTPException,
    Query,
    Request,
    Response,
    status,
)
from fastapi.responses import JSONResponse
from pydantic import Field

from animegen.api.dependencies import (
    get_blob_store,
    get_client_ip_hash,
    get_current_user_id,
    get_generation_context,
    get_public_base_url,
    get_rate_limiter,
    get_uow_factory,
    require_user_id,
    serve_url,
)
from animegen.api.routes.generate import GenerateRequest, GenerateResponse, submit_and_schedule
from animegen.api.schemas import (
    CamelModel,
    ImageListItem,
    Pagination,
    SuccessResponse,
    UserSummary,
)
from animegen.services.exceptions import StorageError
from animegen.services.rate_limiter import FixedWindowRateLimiter
from animegen.services.storage.s3_client import S3BlobStore
from animegen.workers.generation_job_worker import GenerationContext

logger = structlog.get_logger()
router = APIRouter(prefix="/v1", tags=["images"])

SERVE_CACHE_CONTROL = "public, max-age=31536000"
MAX_PAGE_SIZE = 50


# Request/Response Models


class RemixRequest(GenerateRequest):
    """Generation parameters plus the image being remixed."""

    parent_image_id: str = Field(..., min_length=1, max_length=64)


class ImageDetail(CamelModel):
    id: str
    url: str
    prompt: str
    negative_prompt: Optional[str] = None
    model: str
    guidance: float
    steps: int
    seed: Optional[int] = None
    aspect_ratio: str
    width: int
    height: int
    is_private: bool
    parent_id: Optional[str] = None
    like_count: int
    comment_count: int
    created_at: datetime
    tags: list[str]
    is_liked: bool
    user: UserSummary


class ImageDetailResponse(CamelModel):
    image: ImageDetail


class UserImagesResponse(CamelModel):
    images: list[ImageListItem]
    pagination: Pagination


# API Endpoints


@router.get("/serve/{key:path}")
async def serve_image(key: str, blob_store: S3BlobStore = Depends(get_blob_store)) -> Response:
    """Stream a stored blob with long-lived cache headers.

    Raises:
        HTTPException 404: No object under key
    """
    stored = await blob_store.get(key)
    if stored is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found")

    headers = {"Cache-Control": SERVE_CACHE_CONTROL}
    if stored.etag:
        headers["ETag"] = stored.etag

    return Response(content=stored.body, media_type=stored.content_type, headers=headers)


@router.get("/images/{image_id}", response_model=ImageDetailResponse)
async def get_image(
    image_id: str,
    uow_factory=Depends(get_uow_factory),
    user_id: Optional[str] = Depends(get_current_user_id),
    base_url: str = Depends(get_public_base_url),
) -> ImageDetailResponse:
    """Get image detail.

    Raises:
        HTTPException 404: Image does not exist or is another user's private image
    """
    async with await uow_factory() as uow:
        found = await uow.images.get_with_owner(image_id)
        if found is None or not found[0].visible_to(user_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found")
        image, owner = found

        tags = await uow.tags.get_names_for_image(image.id)
        is_liked = user_id is not None and await uow.likes.exists(user_id, image.id)

    return ImageDetailResponse(
        image=ImageDetail(
            id=image.id,
            url=serve_url(base_url, image.storage_key),
            prompt=image.prompt,
            negative_prompt=image.negative_prompt,
            model=image.model,
            guidance=image.guidance,
            steps=image.steps,
            seed=image.seed,
            aspect_ratio=image.aspect_ratio,
            width=image.width,
            height=image.height,
            is_private=image.is_private,
            parent_id=image.parent_id,
            like_count=image.like_count,
            comment_count=image.comment_count,
            created_at=image.created_at,
            tags=tags,
            is_liked=is_liked,
            user=UserSummary.from_user(owner, image.user_id),
        )
    )


@router.post(
    "/images/remix",
    response_model=GenerateResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
)
async def remix_image(
    body: RemixRequest,
    request: Request,
    response: Response,
    background_tasks: BackgroundTasks,
    uow_factory=Depends(get_uow_factory),
    rate_limiter: FixedWindowRateLimiter = Depends(get_rate_limiter),
    generation_context: GenerationContext = Depends(get_generation_context),
    user_id: str = Depends(require_user_id),
    client_ip_hash: str = Depends(get_client_ip_hash),
) -> GenerateResponse | JSONResponse:
    """Submit a generation job whose image will reference parentImageId.

    Rate limited exactly like /v1/generate.

    Raises:
        HTTPException 401: No identity header, or unknown user
        HTTPException 403: Parent is private and owned by someone else
        HTTPException 404: Parent image does not exist
    """
    return await submit_and_schedule(
        body,
        request,
        response,
        background_tasks,
        uow_factory,
        rate_limiter,
        generation_context,
        user_id=user_id,
        client_ip_hash=client_ip_hash,
        parent_image_id=body.parent_image_id,
    )


@router.delete("/images/{image_id}", response_model=SuccessResponse)
async def delete_image(
    image_id: str,
    uow_factory=Depends(get_uow_factory),
    blob_store: S3BlobStore = Depends(get_blob_store),
    user_id: str = Depends(require_user_id),
) -> SuccessResponse:
    """Delete an image owned by the caller.

    The row (with its likes, comments and tag links) and the owner's image
    count change commit together. The blob is removed afterwards on a
    best-effort basis: a failed blob delete leaves an orphaned object, never
    a row pointing at a missing blob.

    Raises:
        HTTPException 401: No identity header
        HTTPException 403: Caller does not own the image
        HTTPException 404: Image does not exist
    """
    async with await uow_factory() as uow:
        image = await uow.images.get_by_id(image_id)
        if image is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found")
        if image.user_id != user_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized")

        storage_key = image.storage_key
        await uow.images.delete(image)
        await uow.users.adjust_image_count(user_id, -1)

    try:
        await blob_store.delete(storage_key)
    except StorageError as e:
        logger.warning("image.blob_delete_failed", image_id=image_id, key=storage_key, error=str(e))

    logger.info("image.deleted", image_id=image_id, user_id=user_id)
    return SuccessResponse()


@router.get("/user/{user_id}", response_model=UserImagesResponse)
async def get_user_images(
    user_id: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1),
    uow_factory=Depends(get_uow_factory),
    current_user_id: Optional[str] = Depends(get_current_user_id),
    base_url: str = Depends(get_public_base_url),
) -> UserImagesResponse:
    """Get a page of a user's images, newest first.

    Private images are included only when the caller is the owner. limit is
    capped at 50.
    """
    limit = min(limit, MAX_PAGE_SIZE)

    async with await uow_factory() as uow:
        images = await uow.images.list_by_user(
            user_id,
            include_private=current_user_id == user_id,
            limit=limit,
            offset=(page - 1) * limit,
        )

    return UserImagesResponse(
        images=[
            ImageListItem.from_image(image, serve_url(base_url, image.storage_key))
            for image in images
        ],
        pagination=Pagination(page=page, limit=limit, has_next=len(images) == limit),
    )
