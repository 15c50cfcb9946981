"""YAML configuration loading with include directive support."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import yaml
from platformdirs import user_config_dir
from pydantic_settings import BaseSettings, YamlConfigSettingsSource

from mergebot.core.log import logger

DEFAULTS_FILE = Path(__file__).parent.parent / "defaults" / "default.yaml"


def cli_includes(argv: list[str] | None = None) -> list[str]:
    """Collect --include FILE arguments ahead of CLI parsing."""
    argv = sys.argv if argv is None else argv
    includes = []
    i = 1
    while i < len(argv):
        if argv[i] == "--include" and i + 1 < len(argv):
            includes.append(argv[i + 1])
            i += 1
        i += 1
    return includes


class YamlWithIncludesSettingsSource(YamlConfigSettingsSource):
    """YAML settings source with include: directives and --include.

    Deep merges, lowest priority first: packaged defaults, user
    config, project config (./mergebot.yaml), --include files.
    """

    def __init__(
        self, settings_cls: type[BaseSettings], yaml_file=None
    ):
        includes = cli_includes()

        base = yaml_file or settings_cls.model_config.get("yaml_file")
        if base and includes:
            yaml_file = (
                [base] if isinstance(base, (str, os.PathLike)) else list(base)
            ) + includes
        elif includes:
            yaml_file = includes
        else:
            yaml_file = base

        super().__init__(settings_cls, yaml_file)

    def _read_files(self, files, **kwargs):  # noqa: ARG002
        """Load and deep-merge every configuration file that exists.

        Args:
            files: Project config and --include file path(s)

        Returns:
            Deep-merged dictionary of all loaded data
        """
        result = {}

        files_to_load = [
            DEFAULTS_FILE,
            Path(user_config_dir("mergebot", appauthor=False))
            / "mergebot.yaml",
        ]
        if files:
            if isinstance(files, (str, os.PathLike)):
                files = [files]
            files_to_load.extend(Path(f).expanduser() for f in files)

        for file_path in files_to_load:
            if file_path.is_file():
                logger.debug("Loading configuration", file=str(file_path))
                data = self._load_file_recursive(file_path, set())
                result = self._deep_merge(result, data)
            else:
                logger.spew(
                    "Configuration file not found (skipping)",
                    file=str(file_path),
                )

        return result

    def _load_file_recursive(
        self, filepath: Path, visited: set[Path]
    ) -> dict:
        """Load a file, resolving include: directives recursively.

        Raises:
            ValueError: If a circular include is detected
        """
        filepath = filepath.resolve()
        if filepath in visited:
            raise ValueError(f"Circular include: {filepath}")
        visited.add(filepath)

        with open(filepath, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if "include" in data:
            includes = data.pop("include")
            if isinstance(includes, str):
                includes = [includes]

            for inc in includes:
                inc_path = self._resolve_path(inc, filepath)
                inc_data = self._load_file_recursive(
                    inc_path, visited.copy()
                )
                # The including file wins over what it includes
                data = self._deep_merge(inc_data, data)

        return data

    def _resolve_path(self, include_path: str, relative_to: Path) -> Path:
        path = Path(include_path).expanduser()
        if path.is_absolute():
            return path
        return (relative_to.parent / path).resolve()

    def _deep_merge(self, base: dict, override: dict) -> dict:
        """Deep merge override into base (override wins)."""
        result = base.copy()
        for key, value in override.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result
