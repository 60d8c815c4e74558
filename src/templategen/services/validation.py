"""Configuration and template validation helpers for TemplateGen."""

from pathlib import Path
from typing import Iterable, List, Optional

from templategen.cancellation import CancellationToken
from templategen.constants import REQUIRED_TEMPLATE_PATHS
from templategen.errors_catalog import actionable_error
from templategen.models import GenerationConfiguration


class ValidationService:
    """Validates user configuration and the shape of the template tree."""

    def __init__(self, logger, required_paths: Iterable[str] = REQUIRED_TEMPLATE_PATHS):
        self.logger = logger
        self.required_paths = tuple(required_paths)

    def validate_configuration(self, configuration: GenerationConfiguration) -> List[str]:
        errors = configuration.validate()
        for error in errors:
            self.logger.error("Invalid configuration: %s", error)
        return errors

    def required_paths_for(self, template_name: str) -> List[str]:
        return [path.format(name=template_name) for path in self.required_paths]

    def find_missing_paths(
        self,
        template_path: Path,
        template_name: str,
        cancellation: Optional[CancellationToken] = None,
    ) -> List[str]:
        """Returns every required relative path absent from the template."""
        missing = []
        for relative_path in self.required_paths_for(template_name):
            if cancellation is not None:
                cancellation.raise_if_cancelled()

            full_path = template_path / relative_path
            if not full_path.is_dir():
                self.logger.warning("Required path not found: %s", full_path)
                missing.append(relative_path)
            else:
                self.logger.debug("Found required path: %s", relative_path)
        return missing

    def validate_template(
        self,
        template_path: Path,
        template_name: str,
        target_path: Path,
        cancellation: Optional[CancellationToken] = None,
    ) -> List[str]:
        """Collects every precondition problem so one report covers them all."""
        issues = []

        if not template_path.is_dir():
            issues.append(actionable_error("template_not_found", path=str(template_path)))
        else:
            missing = self.find_missing_paths(template_path, template_name, cancellation)
            if missing:
                issues.append(actionable_error("template_incomplete", paths=", ".join(missing)))

        if target_path.exists():
            issues.append(actionable_error("target_exists", path=str(target_path)))

        return issues
