"""Post-generation sanity checks on the target tree."""

import os
import re
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from templategen.cancellation import CancellationToken
from templategen.constants import EXPECTED_OUTPUT_PATHS
from templategen.services.rebrand import replace_token
from templategen.services.solution import check_consistency, parse_solution


class OutputValidationService:
    """Re-checks structure and leftover template tokens after all mutations."""

    def __init__(self, logger, expected_paths: Iterable[Tuple[str, str]] = EXPECTED_OUTPUT_PATHS):
        self.logger = logger
        self.expected_paths = tuple(expected_paths)

    def validate(
        self,
        target_path: Path,
        old_name: str,
        new_name: str,
        solution_path: Optional[Path] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> List[str]:
        self.logger.info("Validating generated project at %s", target_path)
        issues: List[str] = []

        issues.extend(self.check_expected_paths(target_path, new_name))
        issues.extend(self.check_leftover_names(target_path, old_name, new_name, cancellation))

        solution_files = sorted(target_path.glob("*.sln"))
        if solution_path is not None and solution_path not in solution_files:
            issues.append(f"Solution file not found: {solution_path.name}")

        for solution_file in solution_files:
            if cancellation is not None:
                cancellation.raise_if_cancelled()
            issues.extend(self.check_solution(solution_file, old_name, new_name))

        for issue in issues:
            self.logger.warning(issue)
        return issues

    def check_expected_paths(self, target_path: Path, new_name: str) -> List[str]:
        issues = []
        for label, relative_path in self.expected_paths:
            full_path = target_path / relative_path.format(name=new_name)
            if not full_path.is_dir():
                issues.append(f"{label} not found at: {full_path}")
            else:
                self.logger.debug("%s found: %s", label, full_path)
        return issues

    def check_leftover_names(
        self,
        target_path: Path,
        old_name: str,
        new_name: str,
        cancellation: Optional[CancellationToken] = None,
    ) -> List[str]:
        """Reports files and directories whose names still carry the old token."""
        issues = []
        for current_root, dirs, files in os.walk(target_path):
            if cancellation is not None:
                cancellation.raise_if_cancelled()
            dirs[:] = [name for name in dirs if name != ".git"]
            dirs.sort()

            for name in dirs + sorted(files):
                if contains_leftover(name, old_name, new_name, ignore_case=True):
                    relative = Path(current_root, name).relative_to(target_path).as_posix()
                    issues.append(f"Path still contains '{old_name}': {relative}")
        return issues

    def check_solution(self, solution_file: Path, old_name: str, new_name: str) -> List[str]:
        try:
            content = solution_file.read_text(encoding="utf-8-sig")
        except (OSError, UnicodeDecodeError) as exc:
            return [f"Could not read solution file {solution_file.name}: {exc}"]

        issues = []
        for line_number, line in enumerate(content.splitlines(), start=1):
            if contains_leftover(line, old_name, new_name):
                issues.append(
                    f"Solution file {solution_file.name} line {line_number} "
                    f"still references '{old_name}': {line.strip()}"
                )

        for problem in check_consistency(parse_solution(content)):
            issues.append(f"Solution file {solution_file.name}: {problem}")

        if not issues:
            self.logger.debug("Solution file properly rebranded: %s", solution_file.name)
        return issues


def contains_leftover(text: str, old_name: str, new_name: str, ignore_case: bool = False) -> bool:
    """True when ``old_name`` occurs in ``text`` outside occurrences of ``new_name``."""
    _, count = replace_token(text, old_name, new_name, re.IGNORECASE if ignore_case else 0)
    return count > 0
