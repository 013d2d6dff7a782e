"""Tests for the aggregate export report and exit codes."""

from __future__ import annotations

from pathlib import Path

from docexport.domain.models import BuildResult, ExportFormat, ExportTarget, SourceReference
from docexport.domain.outcome import Failure, Success
from docexport.errors import ConfigurationError, StageExecutionError
from docexport.export.report import ExitCode, ExportReport


def _result(tmp_path: Path, export_format: ExportFormat, error: Exception | None = None):
    target = ExportTarget(
        format=export_format,
        source=SourceReference(location="paper.md"),
        output_path=tmp_path / f"paper{export_format.default_suffix}",
    )
    if error is None:
        return BuildResult(target=target, outcome=Success((target.output_path,)))
    return BuildResult(target=target, outcome=Failure(error))


def test_all_targets_succeeding_exits_zero(tmp_path: Path) -> None:
    report = ExportReport(results=(_result(tmp_path, ExportFormat.DOCX),))

    assert report.ok
    assert report.exit_code is ExitCode.SUCCESS
    assert report.summary_lines()[0].startswith("ok     docx")


def test_any_failed_target_exits_one(tmp_path: Path) -> None:
    failure = StageExecutionError("compile", "exit 1", diagnostics="! Undefined control sequence")
    report = ExportReport(
        results=(
            _result(tmp_path, ExportFormat.PDF, failure),
            _result(tmp_path, ExportFormat.TEX),
        )
    )

    assert not report.ok
    assert report.exit_code is ExitCode.EXPORT_FAILED
    assert len(report.failed) == 1 and len(report.succeeded) == 1
    payload = report.to_dict()
    assert payload["exit_code"] == 1
    pdf_entry = payload["targets"][0]
    assert pdf_entry["stage"] == "compile"
    assert pdf_entry["diagnostics"] == "! Undefined control sequence"
    assert pdf_entry["error_type"] == "StageExecutionError"


def test_configuration_error_exits_two() -> None:
    report = ExportReport(config_error=ConfigurationError("source document not found: x.md"))

    assert report.exit_code is ExitCode.CONFIG_ERROR
    assert report.summary_lines() == ["configuration error: source document not found: x.md"]
    assert report.to_dict()["targets"] == []
