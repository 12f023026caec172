"""Test doubles and builders shared across test modules."""

import hashlib
from typing import Any, Optional

from animegen.models.image import Image
from animegen.models.user import User
from animegen.services.storage.s3_client import StoredObject

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + b"\x00" * 32

# 2023-11-14T22:13:20Z, well inside an hourly and a 15-minute window
FIXED_NOW = 1_700_000_000.0


class FakeClock:
    """Settable clock returning seconds."""

    def __init__(self, now: float = FIXED_NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeBlobStore:
    """In-memory blob store with the S3BlobStore interface."""

    bucket = "test-bucket"

    def __init__(self):
        self.objects: dict[str, StoredObject] = {}
        self.metadata: dict[str, dict[str, str]] = {}
        self.cache_control: dict[str, str] = {}
        self.put_error: Optional[Exception] = None
        self.delete_error: Optional[Exception] = None

    async def put(
        self,
        key: str,
        data: bytes,
        content_type: str = "image/png",
        cache_control: str = "",
        metadata: Optional[dict[str, str]] = None,
    ) -> str:
        if self.put_error is not None:
            raise self.put_error
        self.objects[key] = StoredObject(
            key=key,
            body=data,
            content_type=content_type,
            etag=f'"{hashlib.md5(data).hexdigest()}"',
            size=len(data),
        )
        self.metadata[key] = dict(metadata or {})
        self.cache_control[key] = cache_control
        return key

    async def get(self, key: str) -> StoredObject | None:
        return self.objects.get(key)

    async def delete(self, key: str) -> None:
        if self.delete_error is not None:
            raise self.delete_error
        self.objects.pop(key, None)


class FakeGateway:
    """Inference gateway double recording every call."""

    def __init__(self, image_bytes: bytes = PNG_BYTES):
        self.image_bytes = image_bytes
        self.error: Optional[Exception] = None
        self.text_response = "anime, blue hair, girl"
        self.text_error: Optional[Exception] = None
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def generate_image(self, model: str, payload: dict[str, Any]) -> bytes:
        self.calls.append((model, payload))
        if self.error is not None:
            raise self.error
        return self.image_bytes

    async def complete_text(
        self, model: str, prompt: str, max_tokens: int = 100, temperature: float = 0.1
    ) -> str:
        if self.text_error is not None:
            raise self.text_error
        return self.text_response



def auth(user: User) -> dict[str, str]:
    """Identity header for a user."""
    return {"X-User-Id": user.id}


async def make_image(
    uow_factory,
    blob_store: FakeBlobStore,
    owner: User,
    is_private: bool = False,
    prompt: str = "silver haired mage",
) -> Image:
    """Persist an image row (tagged "mage" and "anime") and its blob."""
    async with await uow_factory() as uow:
        image = Image(
            user_id=owner.id,
            prompt=prompt,
            model="owner/model",
            guidance=7.5,
            steps=20,
            aspect_ratio="1:1",
            width=1024,
            height=1024,
            byte_size=len(PNG_BYTES),
            sha256=hashlib.sha256(PNG_BYTES).hexdigest(),
            storage_bucket=blob_store.bucket,
            storage_key="",
            is_private=is_private,
        )
        image.storage_key = f"images/2025/01/{image.id}.png"
        await uow.images.add(image)
        await uow.tags.assign_tags(image.id, ["Mage", "anime"])
        await uow.users.adjust_image_count(owner.id, 1)

    await blob_store.put(image.storage_key, PNG_BYTES)
    return image
