"""Configuration loader for TemplateGen."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from templategen.errors import GenerationError

LIST_KEYS = ("include_folders", "exclude_directories", "exclude_files")


class ConfigLoader:
    """Loads YAML configuration files for CLI defaults."""

    SUPPORTED_KEYS = {
        "name",
        "target",
        "template",
        "template_name",
        "database_name",
        "connection_string",
        "include_folders",
        "exclude_directories",
        "exclude_files",
        "git",
        "commit",
        "validate",
        "verbose",
        "log_file",
        "report_file",
    }

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise GenerationError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise GenerationError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise GenerationError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise GenerationError(f"Unknown configuration keys: {unknown_list}")

        for key in LIST_KEYS:
            value = parsed.get(key)
            if value is None:
                continue
            if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
                raise GenerationError(f"Configuration key '{key}' must be a list of strings.")
            parsed[key] = tuple(value)

        return parsed
