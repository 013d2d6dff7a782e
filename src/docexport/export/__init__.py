"""Export orchestration: resolution, batch execution and reporting."""

from docexport.export.batch import BatchExecutor, TargetExecution
from docexport.export.context import DocumentLayer, ExportContext, FrontmatterDocumentLayer
from docexport.export.orchestrator import ExportOrchestrator, run_export
from docexport.export.report import ExitCode, ExportReport
from docexport.export.resolver import ExportTargetResolver, load_template_options

__all__ = [
    "BatchExecutor",
    "DocumentLayer",
    "ExitCode",
    "ExportContext",
    "ExportOrchestrator",
    "ExportReport",
    "ExportTargetResolver",
    "FrontmatterDocumentLayer",
    "TargetExecution",
    "load_template_options",
    "run_export",
]
