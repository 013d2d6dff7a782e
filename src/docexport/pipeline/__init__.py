"""Conversion pipelines: stages, renderer commands and per-format strategies."""

from docexport.pipeline.commands import (
    CommandExecutor,
    CommandResult,
    CommandSpec,
    LocalSubprocessExecutor,
    render_argv,
)
from docexport.pipeline.runner import ConversionPipeline, PipelineState
from docexport.pipeline.stages import PipelineStage, invoke_renderer
from docexport.pipeline.strategies import ExportStrategy, PipelineStrategy, StrategyRegistry

__all__ = [
    "CommandExecutor",
    "CommandResult",
    "CommandSpec",
    "ConversionPipeline",
    "ExportStrategy",
    "LocalSubprocessExecutor",
    "PipelineStage",
    "PipelineState",
    "PipelineStrategy",
    "StrategyRegistry",
    "invoke_renderer",
    "render_argv",
]
