"""Avatar upload: validation, object path convention and profile update."""

import logging
import mimetypes
import os
import time
from typing import Callable, Optional

from bizdesk.constants import AVATAR_MAX_BYTES, AVATAR_PREFIX
from bizdesk.services.store import ObjectStorage, ValidationError

logger = logging.getLogger(__name__)


def avatar_extension(filename: Optional[str], content_type: str) -> str:
    _, ext = os.path.splitext(filename or "")
    ext = ext.lstrip(".").lower()
    if ext:
        return ext
    guessed = mimetypes.guess_extension(content_type or "") or ".png"
    return guessed.lstrip(".")


def avatar_path(user_id: str, extension: str, millis: int) -> str:
    """``avatars/<userId>-<millis>.<ext>``"""
    return f"{AVATAR_PREFIX}/{user_id}-{millis}.{extension}"


def validate_avatar(content: bytes, content_type: Optional[str]) -> None:
    if not content_type or not content_type.startswith("image/"):
        raise ValidationError("Por favor, selecione uma imagem válida.")
    if len(content) > AVATAR_MAX_BYTES:
        raise ValidationError("A imagem deve ter no máximo 2MB.")


def upload_avatar(
    storage: ObjectStorage,
    user_id: str,
    content: bytes,
    content_type: Optional[str],
    filename: Optional[str] = None,
    clock: Callable[[], float] = time.time,
) -> str:
    """Store the image and return its public URL."""
    validate_avatar(content, content_type)
    path = avatar_path(user_id, avatar_extension(filename, content_type), int(clock() * 1000))
    storage.upload(path, content, content_type)
    url = storage.public_url(path)
    logger.info("Avatar uploaded", extra={"user_id": user_id, "path": path, "size": len(content)})
    return url
