import logging
import time
import uuid
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from .cancellation import CancellationToken, ensure_token
from .constants import LOCALDB_CONNECTION_TEMPLATE
from .errors import GenerationCancelled, GenerationError
from .models import (
    GenerationConfiguration,
    GenerationContext,
    GenerationResult,
    StepResult,
)
from .services.command_runner import CommandRunner
from .services.config_patcher import ConfigurationPatcher
from .services.copier import FileCopier
from .services.filesystem import FileSystemService
from .services.output_validation import OutputValidationService
from .services.rebrand import RebrandService
from .services.report import RunReportService
from .services.repository import RepositoryService
from .services.solution import SolutionService
from .services.validation import ValidationService
from .steps import GenerationStep, build_default_steps

__all__ = ["TemplateEngine", "GenerationError", "discover_template_path"]

CANCELLED_MESSAGE = "Operation cancelled by user."


def discover_template_path(template_name: str, start: Optional[Path] = None) -> Path:
    """Walks up from ``start`` looking for ``<template_name>.sln``.

    Falls back to ``start`` itself when no ancestor holds the solution file.
    """
    origin = (start or Path.cwd()).resolve()
    for directory in (origin, *origin.parents):
        if (directory / f"{template_name}.sln").is_file():
            return directory
    return origin


class TemplateEngine:
    """Runs the ordered generation steps against one target directory."""

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        steps: Optional[Sequence[GenerationStep]] = None,
        report_file: Optional[str] = None,
        command_runner: Optional[CommandRunner] = None,
    ):
        self.logger = logger or logging.getLogger("templategen")
        self.report_file = report_file

        self.validation_service = ValidationService(logger=self.logger)
        if steps is None:
            filesystem_service = FileSystemService(logger=self.logger)
            steps = build_default_steps(
                validation_service=self.validation_service,
                copier=FileCopier(logger=self.logger, filesystem_service=filesystem_service),
                solution_service=SolutionService(logger=self.logger),
                rebrand_service=RebrandService(logger=self.logger, filesystem_service=filesystem_service),
                patcher=ConfigurationPatcher(logger=self.logger),
                repository_service=RepositoryService(
                    logger=self.logger,
                    command_runner=command_runner or CommandRunner(logger=self.logger),
                ),
                output_validation_service=OutputValidationService(logger=self.logger),
            )
        self.steps: List[GenerationStep] = sorted(steps, key=lambda step: step.order)

    def build_context(self, configuration: GenerationConfiguration) -> GenerationContext:
        if configuration.template_path:
            template_path = Path(configuration.template_path).expanduser().resolve()
        else:
            template_path = discover_template_path(configuration.template_name)
            self.logger.info("Using template root: %s", template_path)

        database_name = configuration.database_name or f"{configuration.project_name}Db"
        connection_string = configuration.connection_string or LOCALDB_CONNECTION_TEMPLATE.format(
            database=database_name
        )

        return GenerationContext(
            configuration=configuration,
            template_path=template_path,
            target_path=Path(configuration.target_path).expanduser().resolve(),
            old_name=configuration.template_name,
            new_name=configuration.project_name,
            database_name=database_name,
            connection_string=connection_string,
            include_folders=tuple(configuration.include_folders),
            exclude_directories=tuple(configuration.exclude_directories),
            exclude_files=tuple(configuration.exclude_files),
        )

    def generate(
        self,
        configuration: GenerationConfiguration,
        progress: Optional[Callable[[str], None]] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> GenerationResult:
        started = time.perf_counter()

        errors = self.validation_service.validate_configuration(configuration)
        if errors:
            return GenerationResult(
                success=False,
                message="Invalid configuration: " + "; ".join(errors),
                duration_seconds=time.perf_counter() - started,
            )

        report = self._open_report(configuration)
        result = self._run_steps(configuration, progress, ensure_token(cancellation), report, started)
        if report:
            report.finalize(result)
        return result

    def _run_steps(
        self,
        configuration: GenerationConfiguration,
        progress: Optional[Callable[[str], None]],
        token: CancellationToken,
        report: Optional[RunReportService],
        started: float,
    ) -> GenerationResult:
        results: List[StepResult] = []
        scratch: Dict[str, Any] = {}
        current_step: Optional[GenerationStep] = None

        try:
            context = self.build_context(configuration)
            scratch = context.scratch
            self.logger.info(
                "Starting generation: %s -> %s at %s",
                context.old_name,
                context.new_name,
                context.target_path,
            )

            total = len(self.steps)
            for index, step in enumerate(self.steps, start=1):
                token.raise_if_cancelled()
                current_step = step

                banner = f"Step {index}/{total}: {step.name}"
                self.logger.info(banner)
                if progress:
                    progress(banner)
                if report:
                    report.step_started(step.name, step.order)

                result = replace(step.execute(context, progress, token), step_name=step.name, order=step.order)
                results.append(result)
                current_step = None
                if report:
                    report.record_step(result, scratch)

                if not result.success:
                    self.logger.error("Step '%s' failed: %s", step.name, result.message)
                    return GenerationResult(
                        success=False,
                        message=f"Step '{step.name}' failed: {result.message}",
                        step_results=tuple(results),
                        duration_seconds=time.perf_counter() - started,
                        error=result.error,
                    )

                self.logger.info("Step '%s' completed: %s", step.name, result.message)

            elapsed = time.perf_counter() - started
            message = f"Project '{context.new_name}' generated successfully at {context.target_path}"
            self.logger.info("%s in %.2fs", message, elapsed)
            return GenerationResult(
                success=True,
                message=message,
                generated_path=context.target_path,
                step_results=tuple(results),
                duration_seconds=elapsed,
            )

        except (GenerationCancelled, KeyboardInterrupt) as exc:
            reason = str(exc) or CANCELLED_MESSAGE
            self.logger.info("Generation cancelled: %s", reason)
            results.extend(self._interrupted(current_step, reason, exc, report, scratch))
            return GenerationResult(
                success=False,
                message=f"Generation cancelled: {reason}",
                step_results=tuple(results),
                duration_seconds=time.perf_counter() - started,
                error=exc,
                cancelled=True,
            )
        except Exception as exc:
            self.logger.exception("Unexpected error during generation")
            results.extend(self._interrupted(current_step, f"Unexpected error: {exc}", exc, report, scratch))
            return GenerationResult(
                success=False,
                message=f"Unexpected error: {exc}",
                step_results=tuple(results),
                duration_seconds=time.perf_counter() - started,
                error=exc,
            )

    def _open_report(self, configuration: GenerationConfiguration) -> Optional[RunReportService]:
        if not self.report_file:
            return None

        report = RunReportService(report_file=self.report_file, logger=self.logger)
        report.start_run(run_id=uuid.uuid4().hex[:10], project=self._report_metadata(configuration))
        return report

    @staticmethod
    def _report_metadata(configuration: GenerationConfiguration) -> Dict[str, Any]:
        return {
            "project_name": configuration.project_name,
            "target_path": configuration.target_path,
            "template_path": configuration.template_path,
            "template_name": configuration.template_name,
            "database_name": configuration.database_name,
            "include_folders": list(configuration.include_folders),
            "exclude_directories": list(configuration.exclude_directories),
            "exclude_files": list(configuration.exclude_files),
            "initialize_repository": configuration.initialize_repository,
            "create_initial_commit": configuration.create_initial_commit,
            "run_output_validation": configuration.run_output_validation,
        }

    @staticmethod
    def _interrupted(
        step: Optional[GenerationStep],
        message: str,
        exc: BaseException,
        report: Optional[RunReportService],
        scratch: Dict[str, Any],
    ) -> List[StepResult]:
        if step is None:
            return []
        result = StepResult(success=False, message=message, error=exc, step_name=step.name, order=step.order)
        if report:
            report.record_step(result, scratch)
        return [result]
