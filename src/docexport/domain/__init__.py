"""Domain models and outcome values."""

from docexport.domain.models import (
    AssetReference,
    BuildResult,
    ContentAddress,
    ExportDeclaration,
    ExportFormat,
    ExportRequest,
    ExportTarget,
    MaterializedAsset,
    SourceReference,
    StageArtifact,
)
from docexport.domain.outcome import Failure, Outcome, Success

__all__ = [
    "AssetReference",
    "BuildResult",
    "ContentAddress",
    "ExportDeclaration",
    "ExportFormat",
    "ExportRequest",
    "ExportTarget",
    "Failure",
    "MaterializedAsset",
    "Outcome",
    "SourceReference",
    "StageArtifact",
    "Success",
]
