"""Solution (multi-project manifest) generation and inspection."""

import re
import uuid
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

CSHARP_PROJECT_TYPE = "{FAE04EC0-301F-11D3-BF4B-00C04F79EFBC}"
JAVASCRIPT_PROJECT_TYPE = "{9A19103F-16F7-4668-BE54-9A1E7A4F7556}"
SOLUTION_FOLDER_TYPE = "{2150E333-8FDC-42A3-9474-1A3956D46DE8}"

CONFIGURATIONS = ("Debug", "Release")
PLATFORM = "Any CPU"
CONFIGURATION_KINDS = ("ActiveCfg", "Build.0")


@dataclass(frozen=True)
class SolutionProject:
    """A project entry: display name, relative path and owning folder."""

    name: str
    path: str
    type_guid: str
    folder: str


@dataclass(frozen=True)
class SolutionEntry:
    type_guid: str
    name: str
    path: str
    guid: str

    @property
    def is_folder(self) -> bool:
        return self.type_guid.upper() == SOLUTION_FOLDER_TYPE


@dataclass
class SolutionDocument:
    """Parsed view of a solution file, enough to check identifier consistency."""

    entries: List[SolutionEntry] = field(default_factory=list)
    configuration_lines: List[Tuple[str, str]] = field(default_factory=list)
    nesting: List[Tuple[str, str]] = field(default_factory=list)
    solution_guid: Optional[str] = None

    def projects(self) -> List[SolutionEntry]:
        return [entry for entry in self.entries if not entry.is_folder]

    def folders(self) -> List[SolutionEntry]:
        return [entry for entry in self.entries if entry.is_folder]


def new_guid() -> str:
    return "{" + str(uuid.uuid4()).upper() + "}"


def default_projects(project_name: str) -> List[SolutionProject]:
    return [
        SolutionProject(
            name=f"{project_name}.API",
            path=f"Backend\\{project_name}.API\\{project_name}.API.csproj",
            type_guid=CSHARP_PROJECT_TYPE,
            folder="Backend",
        ),
        SolutionProject(
            name=f"{project_name}.Core",
            path=f"Backend\\{project_name}.Core\\{project_name}.Core.csproj",
            type_guid=CSHARP_PROJECT_TYPE,
            folder="Backend",
        ),
        SolutionProject(
            name=f"{project_name}.Data",
            path=f"Backend\\{project_name}.Data\\{project_name}.Data.csproj",
            type_guid=CSHARP_PROJECT_TYPE,
            folder="Backend",
        ),
        SolutionProject(
            name=f"{project_name}.Frontend",
            path=f"Frontend\\{project_name}-frontend\\{project_name}.Frontend.esproj",
            type_guid=JAVASCRIPT_PROJECT_TYPE,
            folder="Frontend",
        ),
    ]


class SolutionService:
    """Builds the solution file that ties the generated projects together."""

    def __init__(self, logger, guid_factory: Callable[[], str] = new_guid):
        self.logger = logger
        self.guid_factory = guid_factory

    def build_solution(
        self,
        project_name: str,
        projects: Optional[List[SolutionProject]] = None,
    ) -> str:
        projects = projects if projects is not None else default_projects(project_name)

        project_guids = [self.guid_factory() for _ in projects]
        folder_names: List[str] = []
        for project in projects:
            if project.folder not in folder_names:
                folder_names.append(project.folder)
        folder_guids: Dict[str, str] = {name: self.guid_factory() for name in folder_names}

        lines = [
            "",
            "Microsoft Visual Studio Solution File, Format Version 12.00",
            "# Visual Studio Version 17",
            "VisualStudioVersion = 17.0.31903.59",
            "MinimumVisualStudioVersion = 10.0.40219.1",
        ]

        for project, guid in zip(projects, project_guids):
            lines.append(
                f'Project("{project.type_guid}") = "{project.name}", "{project.path}", "{guid}"'
            )
            lines.append("EndProject")

        for folder_name in folder_names:
            lines.append(
                f'Project("{SOLUTION_FOLDER_TYPE}") = "{folder_name}", "{folder_name}", '
                f'"{folder_guids[folder_name]}"'
            )
            lines.append("EndProject")

        lines.append("Global")
        lines.append("\tGlobalSection(SolutionConfigurationPlatforms) = preSolution")
        for configuration in CONFIGURATIONS:
            lines.append(f"\t\t{configuration}|{PLATFORM} = {configuration}|{PLATFORM}")
        lines.append("\tEndGlobalSection")

        lines.append("\tGlobalSection(ProjectConfigurationPlatforms) = postSolution")
        for guid in project_guids:
            for configuration in CONFIGURATIONS:
                for kind in CONFIGURATION_KINDS:
                    lines.append(
                        f"\t\t{guid}.{configuration}|{PLATFORM}.{kind} = {configuration}|{PLATFORM}"
                    )
        lines.append("\tEndGlobalSection")

        lines.append("\tGlobalSection(SolutionProperties) = preSolution")
        lines.append("\t\tHideSolutionNode = FALSE")
        lines.append("\tEndGlobalSection")

        lines.append("\tGlobalSection(NestedProjects) = preSolution")
        for project, guid in zip(projects, project_guids):
            lines.append(f"\t\t{guid} = {folder_guids[project.folder]}")
        lines.append("\tEndGlobalSection")

        lines.append("\tGlobalSection(ExtensibilityGlobals) = postSolution")
        lines.append(f"\t\tSolutionGuid = {self.guid_factory()}")
        lines.append("\tEndGlobalSection")
        lines.append("EndGlobal")

        return "\n".join(lines) + "\n"

    def write_solution(self, target_path: Path, project_name: str) -> Path:
        solution_path = target_path / f"{project_name}.sln"
        content = self.build_solution(project_name)

        with open(solution_path, "w", encoding="utf-8", newline="\r\n") as file_obj:
            file_obj.write(content)

        self.logger.info("Solution file created: %s", solution_path.name)
        return solution_path


_PROJECT_LINE = re.compile(
    r'^Project\("(?P<type>\{[^}]+\})"\)\s*=\s*"(?P<name>[^"]*)",\s*"(?P<path>[^"]*)",\s*"(?P<guid>\{[^}]+\})"\s*$'
)
_SECTION_START = re.compile(r"^GlobalSection\((?P<name>[^)]+)\)")
_CONFIGURATION_LINE = re.compile(r"^(?P<guid>\{[^}]+\})\.(?P<key>[^=]+?)\s*=")
_NESTING_LINE = re.compile(r"^(?P<child>\{[^}]+\})\s*=\s*(?P<parent>\{[^}]+\})$")
_SOLUTION_GUID_LINE = re.compile(r"^SolutionGuid\s*=\s*(?P<guid>\{[^}]+\})$")


def parse_solution(content: str) -> SolutionDocument:
    document = SolutionDocument()
    section: Optional[str] = None

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        match = _PROJECT_LINE.match(line)
        if match:
            document.entries.append(
                SolutionEntry(
                    type_guid=match.group("type"),
                    name=match.group("name"),
                    path=match.group("path"),
                    guid=match.group("guid"),
                )
            )
            continue

        match = _SECTION_START.match(line)
        if match:
            section = match.group("name")
            continue

        if line == "EndGlobalSection":
            section = None
            continue

        if section == "ProjectConfigurationPlatforms":
            match = _CONFIGURATION_LINE.match(line)
            if match:
                document.configuration_lines.append(
                    (match.group("guid"), match.group("key").strip())
                )
        elif section == "NestedProjects":
            match = _NESTING_LINE.match(line)
            if match:
                document.nesting.append((match.group("child"), match.group("parent")))
        elif section == "ExtensibilityGlobals":
            match = _SOLUTION_GUID_LINE.match(line)
            if match:
                document.solution_guid = match.group("guid")

    return document


def check_consistency(document: SolutionDocument) -> List[str]:
    """Returns identifier problems; an empty list means the document is consistent.

    Every project must appear once per configuration key and once as a nested
    child of a declared folder. Nothing outside the declarations may be referenced.
    """
    issues = []

    declared = Counter(entry.guid for entry in document.entries)
    for guid, count in declared.items():
        if count > 1:
            issues.append(f"Identifier {guid} is declared {count} times")

    if not document.projects():
        issues.append("Solution declares no projects")

    folder_guids = {entry.guid for entry in document.folders()}
    project_guids = {entry.guid for entry in document.projects()}
    expected_keys = [
        f"{configuration}|{PLATFORM}.{kind}"
        for configuration in CONFIGURATIONS
        for kind in CONFIGURATION_KINDS
    ]

    configuration_counts = Counter(document.configuration_lines)
    nested_children = Counter(child for child, _ in document.nesting)

    for entry in document.projects():
        for key in expected_keys:
            count = configuration_counts.get((entry.guid, key), 0)
            if count != 1:
                issues.append(
                    f"Project '{entry.name}' {entry.guid} has {count} '{key}' configuration entries"
                )
        if nested_children.get(entry.guid, 0) != 1:
            issues.append(
                f"Project '{entry.name}' {entry.guid} is nested "
                f"{nested_children.get(entry.guid, 0)} times"
            )

    for guid, _ in document.configuration_lines:
        if guid not in project_guids:
            issues.append(f"Configuration entry references undeclared project {guid}")

    for child, parent in document.nesting:
        if child not in project_guids and child not in folder_guids:
            issues.append(f"Nesting entry references undeclared identifier {child}")
        if parent not in folder_guids:
            issues.append(f"Nesting parent {parent} is not a declared solution folder")

    return sorted(set(issues), key=issues.index)
