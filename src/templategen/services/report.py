"""Generation report: what each pipeline step did to the target tree."""

import json
import os
import tempfile
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from templategen.models import (
    ConfigPatchOutcome,
    CopyOutcome,
    GenerationResult,
    RebrandOutcome,
    RepositoryOutcome,
    StepResult,
)
from templategen.services.filesystem import format_bytes


class RunReportService:
    """Writes a JSON account of one generation run.

    The file is rewritten after every step, so a run that dies halfway still
    leaves the steps it finished on disk. Write failures are logged once and
    never interrupt generation.
    """

    def __init__(self, report_file: str, logger):
        self.report_file = report_file
        self.logger = logger
        self.enabled = True
        self._recorded = set()
        self.report: Dict[str, Any] = {
            "run_id": None,
            "status": "running",
            "started_at": None,
            "finished_at": None,
            "duration_seconds": None,
            "project": {},
            "current_step": None,
            "steps": [],
            "generated_path": None,
            "message": None,
        }

    def start_run(self, run_id: str, project: Dict[str, Any]):
        self.report["run_id"] = run_id
        self.report["started_at"] = self._now()
        self.report["project"] = project
        self.write()

    def step_started(self, step_name: str, order: int):
        self.report["current_step"] = {"name": step_name, "order": order, "started_at": self._now()}
        self.write()

    def record_step(self, result: StepResult, scratch: Optional[Mapping[str, Any]] = None):
        """Appends ``result`` with the outcomes the step left in ``scratch``.

        Outcomes already attributed to an earlier step are not repeated.
        """
        outcomes = {}
        for key, value in (scratch or {}).items():
            if key in self._recorded:
                continue
            self._recorded.add(key)
            outcomes[key] = describe_outcome(value)

        self.report["steps"].append(
            {
                "order": result.order,
                "name": result.step_name,
                "status": "success" if result.success else "failed",
                "message": result.message,
                "error": str(result.error) if result.error else None,
                "outcomes": outcomes,
            }
        )
        self.report["current_step"] = None
        self.write()

    def finalize(self, result: GenerationResult):
        if result.success:
            status = "success"
        elif result.cancelled:
            status = "cancelled"
        else:
            status = "failed"

        self.report["status"] = status
        self.report["finished_at"] = self._now()
        self.report["duration_seconds"] = round(result.duration_seconds, 3)
        self.report["generated_path"] = str(result.generated_path) if result.generated_path else None
        self.report["message"] = result.message
        self.write()

    def write(self):
        if not self.enabled:
            return

        temp_path = None
        try:
            directory = os.path.dirname(os.path.abspath(self.report_file))
            os.makedirs(directory, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(prefix="run-report-", suffix=".json", dir=directory)
            with os.fdopen(fd, "w", encoding="utf-8") as file_obj:
                json.dump(self.report, file_obj, indent=2, sort_keys=True)
                file_obj.write("\n")
            os.replace(temp_path, self.report_file)
        except OSError as exc:
            self.enabled = False
            self.logger.warning("Could not write report file '%s', continuing without it: %s", self.report_file, exc)
            if temp_path:
                try:
                    os.remove(temp_path)
                except OSError:
                    pass

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()


def describe_outcome(value: Any) -> Any:
    """Reduces a step outcome to the JSON-friendly counts worth reporting."""
    if isinstance(value, CopyOutcome):
        return {
            "files_copied": value.files_copied,
            "directories_created": value.directories_created,
            "total_bytes": value.total_bytes,
            "size": format_bytes(value.total_bytes),
            "failed_files": list(value.failed_files),
        }
    if isinstance(value, RebrandOutcome):
        return {
            "items_renamed": value.items_renamed,
            "files_modified": value.files_modified,
            "bytes_delta": value.bytes_delta,
            "text_files_processed": value.text_files_processed,
            "binary_files_skipped": value.binary_files_skipped,
            "failures": list(value.failures),
        }
    if isinstance(value, ConfigPatchOutcome):
        return {
            "files_modified": value.files_modified,
            "replacements": value.replacements,
            "files": [
                {
                    "path": str(item.path),
                    "kind": item.kind,
                    "success": item.success,
                    "replacements": item.replacements,
                }
                for item in value.file_results
            ],
        }
    if isinstance(value, RepositoryOutcome):
        return {
            "repository_created": value.repository_created,
            "commit_created": value.commit_created,
        }
    return str(value)
