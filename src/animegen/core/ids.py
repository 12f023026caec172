"""Opaque identifier generation for database entities."""

from uuid import uuid4


def new_id() -> str:
    """Return a new opaque 32-character hex identifier."""
    return uuid4().hex
