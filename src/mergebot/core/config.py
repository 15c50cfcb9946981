"""Application state and configuration."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import platformdirs
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from mergebot.core.base import BaseConfig, BaseState
from mergebot.core.log import Logger
from mergebot.core.models import MergeOutcome
from mergebot.core.yaml_settings import YamlWithIncludesSettingsSource

# Modules available for template substitution in YAML files
# Usage: {platformdirs.user_state_dir}, {os.getcwd}, {Path.cwd}
TEMPLATE_NAMESPACE = {
    'os': os,
    'platformdirs': platformdirs,
    'Path': Path,
}

# ============================================================
# CONFIG MODELS (loaded from YAML/env/CLI)
# ============================================================

class GitConfig(BaseConfig):
    """Repository, remote and git command configuration."""

    workdir: Path | None = Field(
        default=None,
        description="Working tree of the repository being merged",
    )
    remote: str = Field(
        default="origin",
        description="Remote to fetch from and push to",
    )
    fetch_refspecs: list[str] = Field(
        default_factory=lambda: [
            "+refs/heads/*:refs/remotes/{config.git.remote}/*",
            "+refs/notes/*:refs/notes/*",
        ],
        description=(
            "Refspecs to fetch (supports {config.git.remote}); notes "
            "must be included so external revisions can be resolved"
        ),
    )
    credential_helper: str | None = Field(
        default=None,
        description="credential.helper value used for fetch and push",
    )
    user_name: str | None = Field(
        default=None,
        description="Author and committer name for merge commits",
    )
    user_email: str | None = Field(
        default=None,
        description="Author and committer email for merge commits",
    )
    commands: dict[str, str] = Field(
        default_factory=dict,
        description="Overrides for git command templates by name",
    )


class ReportConfig(BaseConfig):
    """Conflict blame report configuration."""

    enabled: bool = Field(
        default=True,
        description="Generate blame reports for conflicting files",
    )
    excludes: list[str] = Field(
        default_factory=list,
        description="File extensions never blamed (e.g. png, jar)",
    )
    archive_name: str = Field(
        default="blame.zip",
        description="File name of the report archive",
    )
    date_format: str = Field(
        default="%Y-%m-%d %H:%M:%S %z",
        description="strftime format of blame timestamps",
    )


class LockConfig(BaseConfig):
    """Branch lock service configuration."""

    enabled: bool = Field(
        default=False,
        description="Lock the destination branch during the merge",
    )
    server_url: str | None = Field(
        default=None,
        description="Base URL of the project-management server",
    )
    username: str | None = Field(default=None)
    password: str | None = Field(default=None)
    timeout: float = Field(
        default=60.0,
        description="Request timeout in seconds",
    )
    branches: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Branch name -> package ids that carry its lock",
    )
    endpoints: dict[str, str] = Field(
        default_factory=dict,
        description="REST endpoint paths (login, logoff, package)",
    )
    release_on_failure: bool = Field(
        default=False,
        description=(
            "Release an acquired lock when the run fails before the "
            "normal unlock step"
        ),
    )


class MailConfig(BaseConfig):
    """Summary mail configuration."""

    enabled: bool = Field(
        default=False,
        description="Send a summary mail at the end of the run",
    )
    smtp_host: str | None = Field(default=None)
    smtp_port: int = Field(default=25)
    starttls: bool = Field(default=False)
    username: str | None = Field(default=None)
    password: str | None = Field(default=None)
    default_domain: str | None = Field(
        default=None,
        description="Domain appended to bare recipient names",
    )
    sender: str | None = Field(
        default=None,
        description="From address; defaults to username@default_domain",
    )
    subject: str = Field(default="Git Merge Robot - Summary")
    templates: dict[str, str] = Field(
        default_factory=dict,
        description="HTML fragments used to render the summary",
    )


class Config(BaseConfig):
    """Application configuration loaded from YAML/env/CLI."""

    logger: Logger = Field(
        default=None,
        description="Logger configuration and runtime instance"
    )
    git: GitConfig = Field(
        default_factory=GitConfig,
        description="Repository and git settings",
    )
    report: ReportConfig = Field(
        default_factory=ReportConfig,
        description="Conflict report settings",
    )
    lock: LockConfig = Field(
        default_factory=LockConfig,
        description="Branch lock service settings",
    )
    mail: MailConfig = Field(
        default_factory=MailConfig,
        description="Summary mail settings",
    )

    run_name: str = Field(
        default="mergebot",
        description="Name of this run, used for log paths",
    )
    log_root: Path = Field(
        default_factory=(
            lambda: Path(platformdirs.user_state_dir()) / "mergebot"
        ),
        description=(
            "Root directory for all log files "
            "(supports {platformdirs.*} templates)"
        ),
    )

    @model_validator(mode='after')
    def _setup_logger(self) -> 'Config':
        """Initialize the global logger singleton from this config."""
        from mergebot.core.log import setup_logger

        if self.logger is None:
            self.logger = Logger()

        self.logger = setup_logger(
            log_root=self.log_root,
            run_name=self.run_name,
            level=self.logger.level,
            console=self.logger.console,
            file=self.logger.file,
            otlp=self.logger.otlp,
        )
        return self

    def close(self):
        """Close the global logger singleton, then the other
        closeable children."""
        from mergebot.core.log import logger
        logger.close()
        super().close()


# ============================================================
# RUNTIME STATE MODELS (mutable during workflow execution)
# ============================================================

class MergeState(BaseState):
    """Merge workflow runtime state."""

    status: str = Field(
        default="pending",
        description="Workflow status: pending, running, complete, failed",
    )
    source: str | None = Field(
        default=None,
        description="Merge-source expression (branch[:svn|git:ref])",
    )
    destination: str | None = Field(
        default=None,
        description="Branch receiving the merge",
    )
    message: str = Field(
        default="Merge %from (%rev) into %to",
        description="Commit message template (%from, %to, %rev)",
    )
    repository: Any = Field(
        default=None,
        description="Repository wrapper opened by the Prepare node",
    )
    locked_branch: str | None = Field(
        default=None,
        description="Branch locked by this run and not yet unlocked",
    )
    scratch_dir: Path | None = Field(
        default=None,
        description="Process-scoped temporary directory for reports",
    )
    mail_to: list[str] = Field(
        default_factory=list,
        description="Summary mail recipients for this run",
    )
    outcome: MergeOutcome | None = Field(
        default=None,
        description="Result of the merge once the workflow has ended",
    )
    archive: Path | None = Field(
        default=None,
        description="Blame report archive written for this run",
    )

    model_config = ConfigDict(arbitrary_types_allowed=True)


class Runtime(BaseModel):
    """All runtime state organized by workflow."""

    merge: MergeState = Field(
        default_factory=MergeState,
        description="Merge workflow runtime state"
    )


# ============================================================
# STATE (config + runtime combined)
# ============================================================

class State(BaseSettings):
    """Complete application state: configuration and runtime.

    This is the object that flows through the workflow graph.
    config is loaded from YAML/env/CLI and not mutated; runtime
    holds what the nodes record while they run.
    """

    config: Config = Field(
        default_factory=Config,
        description="Application configuration (from YAML/env/CLI)",
    )
    runtime: Runtime = Field(
        default_factory=Runtime,
        description="Runtime state (mutates during workflow execution)",
    )
    include: list[str] | None = Field(
        default=None,
        description=(
            "Additional YAML files to include and merge. "
            "Use --include on CLI or include: in YAML files."
        ),
    )

    model_config = SettingsConfigDict(
        yaml_file="mergebot.yaml",
        env_file=".env",
        env_prefix="MERGEBOT_",
        env_nested_delimiter="__",
        cli_implicit_flags=True,
        cli_use_class_docs_for_groups=True,
        arbitrary_types_allowed=True,
        extra='ignore'
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Priority, highest first: init kwargs, YAML with includes,
        .env, environment, file secrets."""
        return (
            init_settings,
            YamlWithIncludesSettingsSource(settings_cls),
            dotenv_settings,
            env_settings,
            file_secret_settings,
        )

    @model_validator(mode="after")
    def substitute_templates(self) -> "State":
        """Substitute {config.*} and {platformdirs.*} templates in
        every string and path value."""
        self._substitute_recursive(self)
        return self

    def _substitute_recursive(self, obj: Any) -> None:
        if isinstance(obj, BaseModel):
            for field_name in obj.__class__.model_fields:
                value = getattr(obj, field_name)
                new_value = self._substitute_value(value)
                if new_value is not value:
                    setattr(obj, field_name, new_value)
        elif isinstance(obj, dict):
            for key in obj:
                obj[key] = self._substitute_value(obj[key])
        elif isinstance(obj, list):
            for i in range(len(obj)):
                obj[i] = self._substitute_value(obj[i])

    def _substitute_value(self, value: Any) -> Any:
        if isinstance(value, str):
            return self._substitute_string(value)
        elif isinstance(value, Path):
            substituted = self._substitute_string(str(value))
            return value if substituted == str(value) else Path(substituted)
        elif isinstance(value, (BaseModel, dict, list)):
            self._substitute_recursive(value)
            return value
        return value

    def _substitute_string(self, value: str) -> str:
        """Replace {field.path} templates with actual field values.

        Examples:
            "{config.git.workdir}/build" -> "/home/user/repo/build"
            "{platformdirs.user_state_dir}" -> "~/.local/state/mergebot"
        """
        def replace_template(match):
            parts = match.group(1).split(".")

            if parts[0] in TEMPLATE_NAMESPACE:
                obj = TEMPLATE_NAMESPACE[parts[0]]
                parts = parts[1:]
            else:
                obj = self

            try:
                for part in parts:
                    obj = getattr(obj, part)

                if callable(obj):
                    obj = obj('mergebot', appauthor=False)

                return str(obj)
            except (AttributeError, TypeError):
                return match.group(0)

        return re.sub(r'\{([a-z._]+)\}', replace_template, value)


__all__ = ["State", "Config", "BaseConfig", "BaseState"]
