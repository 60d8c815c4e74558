"""Actionable error catalog for TemplateGen."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "target_exists": {
        "what": "Target directory already exists: {path}",
        "next": "Choose a new `--target` path or remove the existing directory.",
    },
    "template_not_found": {
        "what": "Template root does not exist: {path}",
        "next": "Pass `--template` pointing at the directory that contains the template sources.",
    },
    "template_incomplete": {
        "what": "Template validation failed. Missing paths: {paths}",
        "next": "Restore the missing folders in the template or point `--template` at a complete copy.",
    },
    "invalid_project_name": {
        "what": "Invalid project name: '{name}'.",
        "next": "Use letters, digits and underscores only, starting with a letter or underscore.",
    },
    "git_not_available": {
        "what": "Git is not available or not installed.",
        "next": "Install git and make sure it is on PATH, or run with `--no-git`.",
    },
    "git_too_old": {
        "what": "Git {version} is older than the supported minimum {minimum}.",
        "next": "Upgrade git or run with `--no-git`.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
