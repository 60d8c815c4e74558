"""Pipeline steps for TemplateGen.

Each step is a small object exposing ``name``, ``order`` and
``execute(context, progress, cancellation)``. The engine sorts steps by
``order`` and runs them one after another.
"""

from typing import Callable, List, Optional, Protocol

from templategen.cancellation import CancellationToken
from templategen.models import (
    SCRATCH_COPY_OUTCOME,
    SCRATCH_PATCH_OUTCOME,
    SCRATCH_REBRAND_OUTCOME,
    SCRATCH_REPOSITORY_OUTCOME,
    SCRATCH_SOLUTION_PATH,
    GenerationContext,
    StepResult,
)
from templategen.services.config_patcher import ConfigurationPatcher
from templategen.services.copier import FileCopier
from templategen.services.output_validation import OutputValidationService
from templategen.services.rebrand import RebrandService
from templategen.services.repository import RepositoryService
from templategen.services.solution import SolutionService
from templategen.services.validation import ValidationService

ProgressCallback = Callable[[str], None]


class GenerationStep(Protocol):
    name: str
    order: int

    def execute(
        self,
        context: GenerationContext,
        progress: Optional[ProgressCallback],
        cancellation: CancellationToken,
    ) -> StepResult:
        ...


class ValidateTemplateStep:
    name = "Validate Template"
    order = 1

    def __init__(self, validation_service: ValidationService):
        self.validation_service = validation_service

    def execute(self, context, progress, cancellation) -> StepResult:
        if progress:
            progress(f"Checking template at {context.template_path}...")

        issues = self.validation_service.validate_template(
            context.template_path,
            context.old_name,
            context.target_path,
            cancellation,
        )
        if issues:
            return StepResult(success=False, message="\n".join(issues))
        return StepResult(success=True, message="Template structure is valid")


class CopyFilesStep:
    name = "Copy Template Files"
    order = 2

    def __init__(self, copier: FileCopier):
        self.copier = copier

    def execute(self, context, progress, cancellation) -> StepResult:
        outcome = self.copier.copy_template(
            context.template_path,
            context.target_path,
            context.include_folders,
            context.exclude_directories,
            context.exclude_files,
            progress=progress,
            cancellation=cancellation,
        )
        context.scratch[SCRATCH_COPY_OUTCOME] = outcome
        return StepResult(success=outcome.success, message=outcome.message, error=outcome.error)


class GenerateSolutionStep:
    name = "Generate Solution File"
    order = 3

    def __init__(self, solution_service: SolutionService):
        self.solution_service = solution_service

    def execute(self, context, progress, cancellation) -> StepResult:
        cancellation.raise_if_cancelled()
        if progress:
            progress(f"Writing {context.new_name}.sln...")

        try:
            solution_path = self.solution_service.write_solution(context.target_path, context.new_name)
        except OSError as exc:
            return StepResult(success=False, message=f"Failed to create solution file: {exc}", error=exc)

        context.scratch[SCRATCH_SOLUTION_PATH] = solution_path
        return StepResult(success=True, message=f"Solution file created: {solution_path.name}")


class RebrandStep:
    name = "Rebrand Project"
    order = 4

    def __init__(self, rebrand_service: RebrandService):
        self.rebrand_service = rebrand_service

    def execute(self, context, progress, cancellation) -> StepResult:
        outcome = self.rebrand_service.rebrand(
            context.target_path,
            context.old_name,
            context.new_name,
            progress=progress,
            cancellation=cancellation,
        )
        context.scratch[SCRATCH_REBRAND_OUTCOME] = outcome
        return StepResult(success=outcome.success, message=outcome.message, error=outcome.error)


class PatchConfigurationsStep:
    name = "Update Configurations"
    order = 5

    def __init__(self, patcher: ConfigurationPatcher):
        self.patcher = patcher

    def execute(self, context, progress, cancellation) -> StepResult:
        outcome = self.patcher.patch(context, progress=progress, cancellation=cancellation)
        context.scratch[SCRATCH_PATCH_OUTCOME] = outcome
        return StepResult(success=outcome.success, message=outcome.message, error=outcome.error)


class InitializeRepositoryStep:
    name = "Initialize Git Repository"
    order = 6

    def __init__(self, repository_service: RepositoryService):
        self.repository_service = repository_service

    def execute(self, context, progress, cancellation) -> StepResult:
        if not context.configuration.initialize_repository:
            return StepResult(success=True, message="Git initialization skipped")

        outcome = self.repository_service.initialize(
            context.target_path,
            context.new_name,
            context.configuration.create_initial_commit,
            progress=progress,
            cancellation=cancellation,
        )
        context.scratch[SCRATCH_REPOSITORY_OUTCOME] = outcome
        return StepResult(success=outcome.success, message=outcome.message, error=outcome.error)


class ValidateOutputStep:
    name = "Validate Output"
    order = 7

    def __init__(self, output_validation_service: OutputValidationService):
        self.output_validation_service = output_validation_service

    def execute(self, context, progress, cancellation) -> StepResult:
        if not context.configuration.run_output_validation:
            return StepResult(success=True, message="Output validation skipped")

        if progress:
            progress("Checking generated project...")

        issues = self.output_validation_service.validate(
            context.target_path,
            context.old_name,
            context.new_name,
            solution_path=context.scratch.get(SCRATCH_SOLUTION_PATH),
            cancellation=cancellation,
        )
        if issues:
            details = "\n".join(f"- {issue}" for issue in issues)
            return StepResult(
                success=False,
                message=f"Output validation found {len(issues)} issue(s):\n{details}",
            )
        return StepResult(success=True, message="Output validation passed")


def build_default_steps(
    validation_service: ValidationService,
    copier: FileCopier,
    solution_service: SolutionService,
    rebrand_service: RebrandService,
    patcher: ConfigurationPatcher,
    repository_service: RepositoryService,
    output_validation_service: OutputValidationService,
) -> List[GenerationStep]:
    return [
        ValidateTemplateStep(validation_service),
        CopyFilesStep(copier),
        GenerateSolutionStep(solution_service),
        RebrandStep(rebrand_service),
        PatchConfigurationsStep(patcher),
        InitializeRepositoryStep(repository_service),
        ValidateOutputStep(output_validation_service),
    ]
