from __future__ import annotations

import logging
import os
import re
import time

from interview_gate.utils.errors import ValidationError

log = logging.getLogger(__name__)

ALLOWED_PHOTO_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1F\x7F]")
_UNSAFE_RE = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_path_part(name: str) -> str:
    s = _CONTROL_CHARS_RE.sub("", str(name or "").strip())
    s = s.replace("@", "_at_")
    s = _UNSAFE_RE.sub("_", s)
    s = re.sub(r"_+", "_", s).strip("._")
    if not s:
        s = "file"
    return s[:120]


class LocalPhotoStorage:
    """Verification photos on local disk under `<root>/verification-photos/<interviewId>/`."""

    def __init__(self, root: str, *, max_bytes: int = 5 * 1024 * 1024):
        self._root = root
        self._max_bytes = int(max_bytes)

    def validate(self, content_type: str, size: int) -> str:
        mime = str(content_type or "").split(";", 1)[0].strip().lower()
        ext = ALLOWED_PHOTO_TYPES.get(mime)
        if not ext:
            raise ValidationError(
                "Invalid file type. Only JPEG, PNG, and WebP are allowed.",
                field="photo",
            )
        if size <= 0:
            raise ValidationError("Photo file is empty", field="photo")
        if size > self._max_bytes:
            raise ValidationError(
                f"File too large. Maximum size is {self._max_bytes // (1024 * 1024)}MB.",
                field="photo",
            )
        return ext

    def save(self, *, interview_id: str, email: str, data: bytes, content_type: str) -> str:
        ext = self.validate(content_type, len(data))
        rel_dir = os.path.join("verification-photos", sanitize_path_part(interview_id))
        filename = f"{sanitize_path_part(email)}_{int(time.time() * 1000)}.{ext}"
        abs_dir = os.path.join(self._root, rel_dir)
        os.makedirs(abs_dir, exist_ok=True)

        with open(os.path.join(abs_dir, filename), "wb") as fh:
            fh.write(data)

        ref = f"{rel_dir}/{filename}".replace(os.sep, "/")
        log.info("photo.stored ref=%s bytes=%s", ref, len(data))
        return ref
