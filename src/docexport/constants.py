"""Stable constants shared across the export engine."""

from __future__ import annotations

from typing import Final

CONFIG_SCHEMA_VERSION: Final[int] = 1

DEFAULT_CONFIG_FILE: Final[str] = "export.toml"
ENV_PREFIX: Final[str] = "DOCEXPORT_"

IMAGES_DIR: Final[str] = "images"

TEMP_PREFIX: Final[str] = "docexport-"
RETAINED_TEX_SUFFIX: Final[str] = "_pdf_tex"
REMOTE_SOURCE_FILENAME: Final[str] = "output.md"
ASSET_MANIFEST_FILENAME: Final[str] = "assets.json"
MECA_MANIFEST_FILENAME: Final[str] = "manifest.xml"

__all__ = [
    "ASSET_MANIFEST_FILENAME",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "IMAGES_DIR",
    "MECA_MANIFEST_FILENAME",
    "REMOTE_SOURCE_FILENAME",
    "RETAINED_TEX_SUFFIX",
    "TEMP_PREFIX",
]
