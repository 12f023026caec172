"""Repository layer for animegen backend.

Provides data access abstractions for all domain entities.
No base classes - each repository is self-contained.
"""

from animegen.repositories.generation_job import GenerationJobRepository
from animegen.repositories.image import ImageRepository
from animegen.repositories.social import CommentRepository, LikeRepository
from animegen.repositories.tag import TagRepository
from animegen.repositories.user import UserRepository

__all__ = [
    "UserRepository",
    "GenerationJobRepository",
    "ImageRepository",
    "TagRepository",
    "LikeRepository",
    "CommentRepository",
]
