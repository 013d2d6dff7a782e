"""Content type to file extension lookup."""

from __future__ import annotations

import mimetypes
from typing import Final

from docexport.domain.outcome import Failure, Success
from docexport.errors import AssetFetchError, AssetFetchErrorKind

# Explicit entries take precedence over the platform ``mimetypes`` database so
# results do not vary between hosts.
_EXTENSIONS: Final[dict[str, str]] = {
    # Non-standard alias seen in the wild.
    "image/jpg": "jpg",
    "image/jpeg": "jpg",
    "image/pjpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/svg+xml": "svg",
    "image/webp": "webp",
    "image/tiff": "tiff",
    "image/bmp": "bmp",
    "image/x-icon": "ico",
    "application/pdf": "pdf",
    "application/postscript": "eps",
    "application/json": "json",
    "text/csv": "csv",
    "text/plain": "txt",
    "video/mp4": "mp4",
}


def extension_for(content_type: str, *, key: str = "") -> Success[str] | Failure:
    """
    Return the file extension (without dot) for ``content_type``.

    Parameters such as ``; charset=utf-8`` are ignored and matching is
    case-insensitive. An unmapped type is a ``Failure`` carrying an
    ``AssetFetchError`` of kind ``unrecognized_content_type``.
    """

    normalized = content_type.split(";", 1)[0].strip().lower()
    extension = _EXTENSIONS.get(normalized)
    if extension is None and normalized:
        guessed = mimetypes.guess_extension(normalized, strict=False)
        if guessed:
            extension = guessed.lstrip(".")
    if extension is None:
        return Failure(
            AssetFetchError(
                key,
                AssetFetchErrorKind.UNRECOGNIZED_CONTENT_TYPE,
                f"no extension known for content type {content_type!r}",
            )
        )
    return Success(extension)


def known_content_types() -> tuple[str, ...]:
    return tuple(sorted(_EXTENSIONS))


__all__ = ["extension_for", "known_content_types"]
