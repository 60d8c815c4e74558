import json
import shutil
import subprocess

import pytest

import templategen.services.filesystem as filesystem_module
from templategen.cancellation import CancellationToken
from templategen.core import TemplateEngine, discover_template_path
from templategen.models import GenerationConfiguration, RenameOutcome, StepResult
from templategen.services.solution import check_consistency, parse_solution
from templategen.steps import RebrandStep

PNG_BYTES = b"\x89PNG\r\n\x1a\nAcme" + bytes(range(256))


class DummyLogger:
    def __init__(self):
        self.messages = []

    def _record(self, message, *args, **_kwargs):
        self.messages.append(message % args if args else message)

    debug = _record
    info = _record
    warning = _record
    error = _record
    exception = _record


def write(path, content):
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, bytes):
        path.write_bytes(content)
    else:
        path.write_text(content, encoding="utf-8")


@pytest.fixture
def template(tmp_path):
    root = tmp_path / "template"
    write(root / "Acme.sln", "template solution")
    api = root / "Backend" / "Acme.API"
    write(api / "Acme.API.csproj", "<RootNamespace>Acme.API</RootNamespace>")
    write(api / "Controllers" / "AcmeController.cs", "namespace Acme.API.Controllers;\r\npublic class AcmeController {}\r\n")
    write(
        api / "appsettings.json",
        json.dumps(
            {
                "ConnectionStrings": {"DefaultConnection": "Server=(localdb)\\mssqllocaldb;Database=AcmeDb;"},
                "Jwt": {"Issuer": "Acme.API", "Audience": "Acme.Client"},
            },
            indent=2,
        ),
    )
    write(api / "wwwroot" / "logo.png", PNG_BYTES)
    write(api / "bin" / "Debug" / "Acme.API.dll", b"MZ")
    write(root / "Backend" / "Acme.Core" / "Acme.Core.csproj", "<Project />")
    write(root / "Backend" / "Acme.Data" / "Acme.Data.csproj", "<Project />")
    frontend = root / "Frontend" / "acme-frontend"
    write(frontend / "package.json", json.dumps({"name": "acme-frontend", "version": "0.1.0"}, indent=2))
    write(frontend / "README.md", "Frontend docs\n")
    write(frontend / "node_modules" / "left-pad" / "index.js", "module.exports = 1;")
    write(frontend / "npm-debug.log", "noise")
    write(root / "Docs" / "Acme.md", "not included")
    return root


def build_configuration(template, target, **overrides):
    values = {
        "project_name": "Widgets",
        "target_path": str(target),
        "template_path": str(template),
        "template_name": "Acme",
        "initialize_repository": False,
    }
    values.update(overrides)
    return GenerationConfiguration(**values)


def test_generate_rebrands_template_end_to_end(tmp_path, template):
    target = tmp_path / "out" / "widgets"
    messages = []
    engine = TemplateEngine(logger=DummyLogger())

    result = engine.generate(
        build_configuration(template, target, database_name="Inventory"),
        progress=messages.append,
    )

    assert result.success, result.message
    assert result.generated_path == target
    assert [step.order for step in result.step_results] == [1, 2, 3, 4, 5, 6, 7]
    assert all(step.success for step in result.step_results)
    assert "Step 1/7: Validate Template" in messages
    assert "Step 7/7: Validate Output" in messages

    api = target / "Backend" / "Widgets.API"
    assert (api / "Widgets.API.csproj").read_text(encoding="utf-8") == "<RootNamespace>Widgets.API</RootNamespace>"
    assert (api / "Controllers" / "WidgetsController.cs").read_bytes() == (
        b"namespace Widgets.API.Controllers;\r\npublic class WidgetsController {}\r\n"
    )
    assert (api / "wwwroot" / "logo.png").read_bytes() == PNG_BYTES
    assert (target / "Backend" / "Widgets.Core" / "Widgets.Core.csproj").exists()
    assert not (api / "bin").exists()
    assert not (target / "Docs").exists()

    settings = json.loads((api / "appsettings.json").read_text(encoding="utf-8"))
    assert settings["ConnectionStrings"]["DefaultConnection"] == "Server=(localdb)\\mssqllocaldb;Database=Inventory;"
    assert settings["Jwt"] == {"Issuer": "Widgets.API", "Audience": "Widgets.Client"}

    frontend = target / "Frontend" / "Widgets-frontend"
    assert json.loads((frontend / "package.json").read_text(encoding="utf-8"))["name"] == "widgets-frontend"
    assert (frontend / "README.md").read_text(encoding="utf-8").startswith("# Widgets\n\n**Generated:**")
    assert not (frontend / "node_modules").exists()
    assert not (frontend / "npm-debug.log").exists()

    document = parse_solution((target / "Widgets.sln").read_text(encoding="utf-8"))
    assert check_consistency(document) == []
    assert "Widgets.API" in [entry.name for entry in document.projects()]


def test_generate_stops_after_failed_copy(tmp_path, template, monkeypatch):
    target = tmp_path / "widgets"

    def failing_copy(_source, _destination):
        raise PermissionError("denied")

    monkeypatch.setattr(filesystem_module.shutil, "copy2", failing_copy)
    monkeypatch.setattr(filesystem_module.time, "sleep", lambda _seconds: None)

    result = TemplateEngine(logger=DummyLogger()).generate(build_configuration(template, target))

    assert result.success is False
    assert [step.step_name for step in result.step_results] == ["Validate Template", "Copy Template Files"]
    assert result.step_results[-1].success is False
    assert "Copy Template Files" in result.message
    assert not (target / "Widgets.sln").exists()
    assert (target / "Backend" / "Acme.API").is_dir()


def test_generate_fails_first_step_when_target_exists(tmp_path, template):
    target = tmp_path / "widgets"
    target.mkdir()
    (target / "keep.txt").write_text("keep", encoding="utf-8")

    result = TemplateEngine(logger=DummyLogger()).generate(build_configuration(template, target))

    assert result.success is False
    assert len(result.step_results) == 1
    assert "Target directory already exists" in result.step_results[0].message
    assert [path.name for path in target.iterdir()] == ["keep.txt"]


def test_generate_rejects_invalid_configuration(tmp_path, template):
    result = TemplateEngine(logger=DummyLogger()).generate(
        build_configuration(template, tmp_path / "widgets", project_name="9Widgets")
    )

    assert result.success is False
    assert result.step_results == ()
    assert "Invalid project name" in result.message
    assert not (tmp_path / "widgets").exists()


def test_generate_returns_cancelled_result_before_first_step(tmp_path, template):
    token = CancellationToken()
    token.cancel("stop requested")

    result = TemplateEngine(logger=DummyLogger()).generate(
        build_configuration(template, tmp_path / "widgets"), cancellation=token
    )

    assert result.cancelled is True
    assert result.success is False
    assert "stop requested" in result.message
    assert result.step_results == ()


def test_generate_cancellation_during_step_is_reported_for_that_step(tmp_path, template):
    token = CancellationToken()

    def progress(message):
        if message.startswith("Step 4/7"):
            token.cancel()

    result = TemplateEngine(logger=DummyLogger()).generate(
        build_configuration(template, tmp_path / "widgets"), progress=progress, cancellation=token
    )

    assert result.cancelled is True
    assert [step.success for step in result.step_results] == [True, True, True, False]
    assert result.step_results[-1].step_name == "Rebrand Project"
    assert (tmp_path / "widgets" / "Backend" / "Acme.API").is_dir()


def test_output_validation_reports_skipped_rename(tmp_path, template):
    engine = TemplateEngine(logger=DummyLogger())
    rebrand_step = next(step for step in engine.steps if isinstance(step, RebrandStep))
    rebrand_step.rebrand_service.rename_structure = lambda *_args, **_kwargs: RenameOutcome(success=True)

    result = engine.generate(build_configuration(template, tmp_path / "widgets"))

    assert result.success is False
    assert result.step_results[-1].step_name == "Validate Output"
    message = result.step_results[-1].message
    assert "Backend API project not found" in message
    assert "Path still contains 'Acme': Backend/Acme.API" in message


def test_generate_skips_output_validation_when_disabled(tmp_path, template):
    result = TemplateEngine(logger=DummyLogger()).generate(
        build_configuration(template, tmp_path / "widgets", run_output_validation=False)
    )

    assert result.success
    assert result.step_results[-1].message == "Output validation skipped"
    assert result.step_results[-2].message == "Git initialization skipped"


class RecordingStep:
    def __init__(self, name, order, calls, outcome=True, exc=None):
        self.name = name
        self.order = order
        self.calls = calls
        self.outcome = outcome
        self.exc = exc

    def execute(self, context, progress, cancellation):
        self.calls.append(self.name)
        if self.exc is not None:
            raise self.exc
        return StepResult(success=self.outcome, message=f"{self.name} done")


def test_generate_runs_steps_by_order_and_stops_on_failure(tmp_path, template):
    calls = []
    steps = [
        RecordingStep("third", 3, calls),
        RecordingStep("first", 1, calls),
        RecordingStep("second", 2, calls, outcome=False),
    ]

    result = TemplateEngine(logger=DummyLogger(), steps=steps).generate(
        build_configuration(template, tmp_path / "widgets")
    )

    assert calls == ["first", "second"]
    assert result.success is False
    assert [(step.step_name, step.order) for step in result.step_results] == [("first", 1), ("second", 2)]


def test_generate_wraps_unexpected_errors(tmp_path, template):
    calls = []
    steps = [RecordingStep("explode", 1, calls, exc=ValueError("kaboom"))]

    result = TemplateEngine(logger=DummyLogger(), steps=steps).generate(
        build_configuration(template, tmp_path / "widgets")
    )

    assert result.success is False
    assert result.cancelled is False
    assert isinstance(result.error, ValueError)
    assert "kaboom" in result.message
    assert result.step_results[0].step_name == "explode"


def test_generate_treats_keyboard_interrupt_as_cancellation(tmp_path, template):
    steps = [RecordingStep("interrupt", 1, [], exc=KeyboardInterrupt())]

    result = TemplateEngine(logger=DummyLogger(), steps=steps).generate(
        build_configuration(template, tmp_path / "widgets")
    )

    assert result.cancelled is True
    assert "Operation cancelled by user." in result.message


def test_generate_writes_run_report(tmp_path, template):
    report_file = tmp_path / "reports" / "run.json"

    result = TemplateEngine(logger=DummyLogger(), report_file=str(report_file)).generate(
        build_configuration(template, tmp_path / "widgets")
    )

    data = json.loads(report_file.read_text(encoding="utf-8"))
    assert result.success
    assert data["status"] == "success"
    assert data["project"]["project_name"] == "Widgets"
    assert data["generated_path"] == str(tmp_path / "widgets")
    assert [step["status"] for step in data["steps"]] == ["success"] * 7
    outcomes = {key: value for step in data["steps"] for key, value in step["outcomes"].items()}
    assert outcomes["copy_outcome"]["files_copied"] == 8
    assert outcomes["solution_path"].endswith("Widgets.sln")
    assert outcomes["rebrand_outcome"]["binary_files_skipped"] == 1
    assert "files" in outcomes["patch_outcome"]


def test_generate_runs_when_report_file_cannot_be_written(tmp_path, template):
    blocker = tmp_path / "blocker"
    blocker.write_text("plain file", encoding="utf-8")
    logger = DummyLogger()

    result = TemplateEngine(logger=logger, report_file=str(blocker / "run.json")).generate(
        build_configuration(template, tmp_path / "widgets")
    )

    assert result.success, result.message
    assert len(result.step_results) == 7
    assert any("Could not write report file" in message for message in logger.messages)


def test_generate_with_project_name_equal_to_template_name(tmp_path, template):
    target = tmp_path / "acme"

    result = TemplateEngine(logger=DummyLogger()).generate(
        build_configuration(template, target, project_name="Acme")
    )

    assert result.success, result.message
    api = target / "Backend" / "Acme.API"
    assert (api / "Acme.API.csproj").read_text(encoding="utf-8") == "<RootNamespace>Acme.API</RootNamespace>"
    assert (target / "Frontend" / "Acme-frontend").is_dir()
    assert (target / "Acme.sln").is_file()


def test_discover_template_path_walks_up_to_solution(tmp_path, template):
    nested = template / "Backend" / "Acme.API" / "Controllers"

    assert discover_template_path("Acme", nested) == template.resolve()
    assert discover_template_path("Missing", nested) == nested.resolve()


def test_build_context_derives_database_and_connection(tmp_path, template, monkeypatch):
    monkeypatch.chdir(template / "Backend")
    engine = TemplateEngine(logger=DummyLogger())

    context = engine.build_context(
        GenerationConfiguration(project_name="Widgets", target_path="widgets", template_name="Acme")
    )

    assert context.template_path == template.resolve()
    assert context.target_path == (template / "Backend" / "widgets").resolve()
    assert context.database_name == "WidgetsDb"
    assert "Database=WidgetsDb;" in context.connection_string


@pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")
def test_generate_initializes_git_repository(tmp_path, template, monkeypatch):
    for variable in ("GIT_AUTHOR_NAME", "GIT_COMMITTER_NAME"):
        monkeypatch.setenv(variable, "Template Tests")
    for variable in ("GIT_AUTHOR_EMAIL", "GIT_COMMITTER_EMAIL"):
        monkeypatch.setenv(variable, "tests@example.com")
    target = tmp_path / "widgets"

    result = TemplateEngine(logger=DummyLogger()).generate(
        build_configuration(template, target, initialize_repository=True)
    )

    assert result.success, result.message
    assert (target / ".git").is_dir()
    tracked = subprocess.run(
        ["git", "ls-files"], cwd=target, capture_output=True, text=True, check=True
    ).stdout.splitlines()
    assert "Widgets.sln" in tracked
