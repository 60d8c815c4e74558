"""Targeted rewriting of configuration and documentation files."""

import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from templategen.cancellation import CancellationToken
from templategen.errors import GenerationCancelled
from templategen.models import ConfigPatchOutcome, FilePatchResult, GenerationContext
from templategen.services.rebrand import replace_token

KIND_APPSETTINGS = "appsettings"
KIND_PACKAGE_JSON = "package.json"
KIND_MARKDOWN = "markdown"

ASSISTANT_INSTRUCTIONS_PATH = Path(".github") / "copilot-instructions.md"


class ConfigurationPatcher:
    """Rewrites known fields in structured files, and headers in free text.

    Structured files are parsed and only the known fields are touched. The
    patcher runs after rebranding, so it accepts both the template identity and
    the already-rebranded one in every field it inspects.
    """

    def __init__(self, logger, clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self.logger = logger
        self.clock = clock

    def patch(
        self,
        context: GenerationContext,
        progress: Optional[Callable[[str], None]] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> ConfigPatchOutcome:
        root = context.target_path
        self.logger.info("Starting configuration updates in %s", root)
        results: List[FilePatchResult] = []

        try:
            if progress:
                progress("Updating appsettings files...")
            for path in self._find(root, "appsettings*.json"):
                self._check(cancellation)
                results.append(self.patch_appsettings(path, context))

            if progress:
                progress("Updating package.json files...")
            for path in self._find(root, "package.json"):
                self._check(cancellation)
                results.append(self.patch_package_json(path, context))

            if progress:
                progress("Updating README files...")
            for path in self._find(root, "README.md"):
                self._check(cancellation)
                results.append(self.patch_readme(path, context.new_name))

            instructions = root / ASSISTANT_INSTRUCTIONS_PATH
            if instructions.is_file():
                if progress:
                    progress("Updating copilot-instructions.md...")
                self._check(cancellation)
                results.append(
                    self.patch_assistant_instructions(instructions, context.old_name, context.new_name)
                )
            else:
                self.logger.debug("copilot-instructions.md not found at %s", instructions)
        except GenerationCancelled:
            raise
        except OSError as exc:
            self.logger.error("Configuration update failed: %s", exc)
            return ConfigPatchOutcome(
                success=False,
                message=f"Configuration update failed: {exc}",
                file_results=tuple(results),
                error=exc,
            )

        failures = [result for result in results if not result.success]
        modified = [result for result in results if result.success and result.replacements > 0]
        replacements = sum(result.replacements for result in results)

        message = (
            f"Processed {len(results)} files: {len(modified)} updated, "
            f"{replacements} replacements, {len(failures)} failures"
        )
        if failures:
            failed_list = "; ".join(f"{result.path.name}: {result.message}" for result in failures[:5])
            message = f"{message} ({failed_list})"
            self.logger.warning("Configuration updates completed with %s failures", len(failures))
        self.logger.info("Configuration updates completed: %s", message)

        return ConfigPatchOutcome(
            success=not failures,
            message=message,
            file_results=tuple(results),
            files_modified=len(modified),
            replacements=replacements,
        )

    def patch_appsettings(self, path: Path, context: GenerationContext) -> FilePatchResult:
        def update(node: Dict[str, Any]) -> int:
            replacements = 0

            connection_strings = node.get("ConnectionStrings")
            if isinstance(connection_strings, dict):
                current = connection_strings.get("DefaultConnection")
                if isinstance(current, str):
                    updated = self._patch_connection_string(current, context)
                    if updated != current:
                        connection_strings["DefaultConnection"] = updated
                        replacements += 1
                        self.logger.debug("Updated DefaultConnection in %s", path)

            jwt = node.get("Jwt")
            if isinstance(jwt, dict):
                for key in ("Issuer", "Audience"):
                    current = jwt.get(key)
                    if not isinstance(current, str):
                        continue
                    updated, count = replace_token(current, context.old_name, context.new_name)
                    if count:
                        jwt[key] = updated
                        replacements += 1
                        self.logger.debug("Updated Jwt.%s in %s", key, path)

            return replacements

        return self._patch_json(path, KIND_APPSETTINGS, update, "settings")

    def _patch_connection_string(self, value: str, context: GenerationContext) -> str:
        if context.configuration.connection_string:
            return context.connection_string

        updated = value
        for name in dict.fromkeys((context.old_name, context.new_name)):
            pattern = re.compile(rf"(?<![A-Za-z0-9_]){re.escape(name)}Db(?=_Dev\b|\b)")
            updated = pattern.sub(lambda _match: context.database_name, updated)
        return updated

    def patch_package_json(self, path: Path, context: GenerationContext) -> FilePatchResult:
        old_package = f"{context.old_name.lower()}-frontend"
        new_package = f"{context.new_name.lower()}-frontend"
        new_description = f"{context.new_name} Frontend Application"

        def update(node: Dict[str, Any]) -> int:
            replacements = 0

            name = node.get("name")
            if name == old_package:
                node["name"] = new_package
                replacements += 1
                self.logger.debug("Updated package name in %s", path)

            description = node.get("description")
            if (
                isinstance(description, str)
                and description != new_description
                and (old_package in description or context.old_name in description)
            ):
                node["description"] = new_description
                replacements += 1
                self.logger.debug("Updated package description in %s", path)

            return replacements

        return self._patch_json(path, KIND_PACKAGE_JSON, update, "properties")

    def patch_readme(self, path: Path, project_name: str) -> FilePatchResult:
        try:
            content = path.read_text(encoding="utf-8")
            bom = "\ufeff" if content.startswith("\ufeff") else ""
            body = content[len(bom):]
            if body.startswith("#"):
                return FilePatchResult(
                    path=path, kind=KIND_MARKDOWN, success=True, message="Header already present"
                )

            generated = self.clock().strftime("%Y-%m-%d %H:%M:%S")
            header = f"# {project_name}\n\n**Generated:** {generated} UTC\n\n"
            path.write_text(bom + header + body, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            self.logger.warning("Failed to update README %s: %s", path, exc)
            return FilePatchResult(
                path=path, kind=KIND_MARKDOWN, success=False, message=f"Error: {exc}", error=exc
            )

        return FilePatchResult(
            path=path,
            kind=KIND_MARKDOWN,
            success=True,
            message="Added project header with timestamp",
            replacements=1,
        )

    def patch_assistant_instructions(self, path: Path, old_name: str, new_name: str) -> FilePatchResult:
        try:
            content = path.read_text(encoding="utf-8")
            updated, count = replace_token(content, old_name, new_name, re.IGNORECASE)
            if count:
                path.write_text(updated, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            self.logger.warning("Failed to update %s: %s", path, exc)
            return FilePatchResult(
                path=path, kind=KIND_MARKDOWN, success=False, message=f"Error: {exc}", error=exc
            )

        message = f"Updated {count} project references" if count else "No changes needed"
        return FilePatchResult(
            path=path, kind=KIND_MARKDOWN, success=True, message=message, replacements=count
        )

    def _patch_json(
        self,
        path: Path,
        kind: str,
        update: Callable[[Dict[str, Any]], int],
        noun: str,
    ) -> FilePatchResult:
        try:
            node = json.loads(path.read_text(encoding="utf-8-sig"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            self.logger.warning("Failed to read %s: %s", path, exc)
            return FilePatchResult(path=path, kind=kind, success=False, message=f"Error: {exc}", error=exc)

        if not isinstance(node, dict):
            return FilePatchResult(path=path, kind=kind, success=False, message="Invalid JSON structure")

        replacements = update(node)
        if not replacements:
            return FilePatchResult(path=path, kind=kind, success=True, message="No changes needed")

        try:
            path.write_text(json.dumps(node, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        except OSError as exc:
            self.logger.warning("Failed to write %s: %s", path, exc)
            return FilePatchResult(path=path, kind=kind, success=False, message=f"Error: {exc}", error=exc)

        return FilePatchResult(
            path=path,
            kind=kind,
            success=True,
            message=f"Updated {replacements} {noun}",
            replacements=replacements,
        )

    @staticmethod
    def _find(root: Path, pattern: str) -> List[Path]:
        return sorted(path for path in root.rglob(pattern) if path.is_file())

    @staticmethod
    def _check(cancellation: Optional[CancellationToken]):
        if cancellation is not None:
            cancellation.raise_if_cancelled()
