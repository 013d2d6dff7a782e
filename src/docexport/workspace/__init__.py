"""Scratch directory lifecycle for pipeline stages."""

from docexport.workspace.temp_manager import TempArtifactManager

__all__ = ["TempArtifactManager"]
