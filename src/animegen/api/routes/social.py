"""Likes and comments API endpoints.

- POST /v1/like, DELETE /v1/like - Like / unlike an image
- POST /v1/comment - Comment on an image
- GET /v1/comments/{image_id} - Paginated comments, newest first

Every write updates the cached counters on Image (and User for likes) in
the same transaction.
"""

import re
from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import Field

from animegen.api.dependencies import get_current_user_id, get_uow_factory, require_user_id
from animegen.api.schemas import CamelModel, Pagination, SuccessResponse, UserSummary
from animegen.models.social import Comment
from animegen.uow import UnitOfWork

logger = structlog.get_logger()
router = APIRouter(prefix="/v1", tags=["social"])

HTML_TAG = re.compile(r"<[^>]*>")
MAX_PAGE_SIZE = 50


# Request/Response Models


class LikeRequest(CamelModel):
    image_id: str = Field(..., min_length=1)


class CommentRequest(CamelModel):
    image_id: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1, max_length=500)


class CommentOut(CamelModel):
    id: str
    content: str
    created_at: datetime
    user: UserSummary


class CommentResponse(CamelModel):
    comment: CommentOut


class CommentsResponse(CamelModel):
    comments: list[CommentOut]
    pagination: Pagination


def sanitize_comment(content: str) -> str:
    """Strip HTML tags and surrounding whitespace."""
    return HTML_TAG.sub("", content).strip()


async def _require_user(uow: UnitOfWork, user_id: str):
    user = await uow.users.get_by_id(user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


async def _require_visible_image(uow: UnitOfWork, image_id: str, user_id: str):
    image = await uow.images.get_by_id(image_id)
    if image is None or not image.visible_to(user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found")
    return image


# API Endpoints


@router.post("/like", response_model=SuccessResponse)
async def like_image(
    body: LikeRequest,
    uow_factory=Depends(get_uow_factory),
    user_id: str = Depends(require_user_id),
) -> SuccessResponse:
    """Like an image.

    Raises:
        HTTPException 400: Already liked
        HTTPException 401: No identity header, or unknown user
        HTTPException 404: Image does not exist or is not visible to the caller
    """
    async with await uow_factory() as uow:
        await _require_user(uow, user_id)
        await _require_visible_image(uow, body.image_id, user_id)

        if await uow.likes.exists(user_id, body.image_id):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Already liked")

        await uow.likes.add(user_id, body.image_id)
        await uow.images.adjust_like_count(body.image_id, 1)
        await uow.users.adjust_like_count(user_id, 1)

    logger.info("image.liked", image_id=body.image_id, user_id=user_id)
    return SuccessResponse()


@router.delete("/like", response_model=SuccessResponse)
async def unlike_image(
    body: LikeRequest,
    uow_factory=Depends(get_uow_factory),
    user_id: str = Depends(require_user_id),
) -> SuccessResponse:
    """Remove the caller's like from an image.

    Raises:
        HTTPException 401: No identity header
        HTTPException 404: Caller has not liked this image
    """
    async with await uow_factory() as uow:
        removed = await uow.likes.remove(user_id, body.image_id)
        if not removed:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Like not found")

        await uow.images.adjust_like_count(body.image_id, -1)
        await uow.users.adjust_like_count(user_id, -1)

    logger.info("image.unliked", image_id=body.image_id, user_id=user_id)
    return SuccessResponse()


@router.post("/comment", response_model=CommentResponse)
async def add_comment(
    body: CommentRequest,
    uow_factory=Depends(get_uow_factory),
    user_id: str = Depends(require_user_id),
) -> CommentResponse:
    """Comment on an image. HTML tags are stripped before storing.

    Raises:
        HTTPException 400: Content is empty after sanitizing
        HTTPException 401: No identity header, or unknown user
        HTTPException 404: Image does not exist or is not visible to the caller
    """
    content = sanitize_comment(body.content)
    if not content:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Comment cannot be empty"
        )

    async with await uow_factory() as uow:
        user = await _require_user(uow, user_id)
        await _require_visible_image(uow, body.image_id, user_id)

        comment = await uow.comments.add(
            Comment(image_id=body.image_id, user_id=user_id, content=content)
        )
        await uow.images.adjust_comment_count(body.image_id, 1)

        result = CommentOut(
            id=comment.id,
            content=comment.content,
            created_at=comment.created_at,
            user=UserSummary.from_user(user),
        )

    logger.info("comment.created", comment_id=result.id, image_id=body.image_id, user_id=user_id)
    return CommentResponse(comment=result)


@router.get("/comments/{image_id}", response_model=CommentsResponse)
async def get_comments(
    image_id: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1),
    uow_factory=Depends(get_uow_factory),
    user_id=Depends(get_current_user_id),
) -> CommentsResponse:
    """Get comments on an image, newest first. limit is capped at 50.

    Raises:
        HTTPException 404: Image does not exist or is not visible to the caller
    """
    limit = min(limit, MAX_PAGE_SIZE)

    async with await uow_factory() as uow:
        await _require_visible_image(uow, image_id, user_id)
        rows = await uow.comments.list_for_image(image_id, limit=limit, offset=(page - 1) * limit)

    return CommentsResponse(
        comments=[
            CommentOut(
                id=comment.id,
                content=comment.content,
                created_at=comment.created_at,
                user=UserSummary.from_user(author, comment.user_id),
            )
            for comment, author in rows
        ],
        pagination=Pagination(page=page, limit=limit, has_next=len(rows) == limit),
    )
