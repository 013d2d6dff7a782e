"""Asset fetching, typing and collision-free materialization."""

from docexport.assets.fetch import AssetFetcher, HttpAssetFetcher
from docexport.assets.materializer import (
    AssetMaterializationReport,
    AssetMaterializer,
    select_candidate,
)
from docexport.assets.mime import extension_for, known_content_types

__all__ = [
    "AssetFetcher",
    "AssetMaterializationReport",
    "AssetMaterializer",
    "HttpAssetFetcher",
    "extension_for",
    "known_content_types",
    "select_candidate",
]
