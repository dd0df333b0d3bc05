"""Template harness configuration.

Centralised, typed configuration for a harness run.  All settings use
Pydantic v2 models so they can be validated at construction time and
serialised to/from JSON or environment variables without boiler-plate.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from .errors import ConfigError
from .results import CheckKind
from .utils import DEFAULT_BASE_PORT


class CommandConfig(BaseModel):
    """External commands the harness drives.

    Each entry is an argv prefix; the harness appends the per-call
    arguments (template name, ``--port``) itself.
    """

    scaffold: list[str] = Field(
        default=["npx", "create-astro"],
        min_length=1,
        description="Scaffolding CLI, run from the fixtures directory",
    )
    install: list[str] = Field(
        default=["npm", "install", "--no-package-lock", "--silent"],
        min_length=1,
        description="Dependency installer, run inside the generated project",
    )
    dev: list[str] = Field(
        default=["npm", "run", "start", "--"],
        min_length=1,
        description="Dev server start command; '--port <n>' is appended",
    )
    build: list[str] = Field(default=["npm", "run", "build"], min_length=1)


class ChecklistConfig(BaseModel):
    """File-system contracts for generated projects and build output."""

    required: list[str] = Field(default=["package.json", ".gitignore", "public", "src"])
    forbidden: list[str] = Field(default=[".git", "meta.json"])
    build_output_dir: str = Field(default="dist")
    build_artifacts: list[str] = Field(default=["index.html", "_astro"])


class HarnessConfig(BaseModel):
    """Global harness configuration.

    Instances are created once by the CLI entry point (or by tests) and passed
    to :class:`~template_harness.harness.TemplateHarness`.
    """

    fixtures_dir: Path = Field(default=Path("./fixtures"))
    commit: str | None = Field(default=None, description="Template revision; resolved from the environment when unset")
    base_port: int = Field(default=DEFAULT_BASE_PORT, ge=1, le=65535)
    idle_timeout: float = Field(default=10.0, gt=0, description="Seconds of dev-server silence before giving up")
    ready_markers: list[str] = Field(default=["Server started"], min_length=1)
    probe_timeout: float = Field(default=10.0, gt=0)
    setup_timeout: float = Field(default=600.0, gt=0, description="Per-step timeout for scaffold and install")
    build_timeout: float = Field(default=600.0, gt=0)
    terminate_timeout: float = Field(default=5.0, gt=0, description="Grace period before the dev server is killed")
    max_parallel_templates: int = Field(default=4, ge=1)
    checks: list[CheckKind] = Field(
        default=[CheckKind.STRUCTURE, CheckKind.DEV, CheckKind.BUILD],
        min_length=1,
    )
    commands: CommandConfig = Field(default_factory=CommandConfig)
    checklist: ChecklistConfig = Field(default_factory=ChecklistConfig)

    # ------------------------------------------------------------------
    # Derived paths
    # ------------------------------------------------------------------

    def project_dir(self, template: str) -> Path:
        """Fixture directory a template is generated into."""
        return self.fixtures_dir / template

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path) -> Path:
        """Persist the configuration to a JSON file."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return target

    @classmethod
    def load(cls, path: Path) -> "HarnessConfig":
        """Load a previously-saved configuration from JSON.

        Raises:
            ConfigError: If the file cannot be read.
        """
        target = Path(path)
        try:
            raw = target.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise ConfigError(f"Config file not found: {target}") from exc
        except OSError as exc:
            raise ConfigError(f"Could not read config file {target}: {exc}") from exc
        return cls.model_validate_json(raw)

    @classmethod
    def from_env(cls) -> "HarnessConfig":
        """Build a ``HarnessConfig`` from environment variables.

        Recognised variables (all optional):
            HARNESS_FIXTURES_DIR, HARNESS_COMMIT, HARNESS_BASE_PORT,
            HARNESS_IDLE_TIMEOUT, HARNESS_MAX_PARALLEL, HARNESS_CHECKS.
        """
        kwargs: dict[str, Any] = {}
        if os.environ.get("HARNESS_FIXTURES_DIR"):
            kwargs["fixtures_dir"] = Path(os.environ["HARNESS_FIXTURES_DIR"])
        if os.environ.get("HARNESS_COMMIT"):
            kwargs["commit"] = os.environ["HARNESS_COMMIT"]
        if os.environ.get("HARNESS_BASE_PORT"):
            kwargs["base_port"] = int(os.environ["HARNESS_BASE_PORT"])
        if os.environ.get("HARNESS_IDLE_TIMEOUT"):
            kwargs["idle_timeout"] = float(os.environ["HARNESS_IDLE_TIMEOUT"])
        if os.environ.get("HARNESS_MAX_PARALLEL"):
            kwargs["max_parallel_templates"] = int(os.environ["HARNESS_MAX_PARALLEL"])
        if os.environ.get("HARNESS_CHECKS"):
            kwargs["checks"] = parse_checks(os.environ["HARNESS_CHECKS"])
        return cls(**kwargs)


def parse_checks(value: str) -> list[CheckKind]:
    """Parse a comma-separated list such as ``"structure,build"``.

    Raises:
        ValueError: On an unknown check name.
    """
    checks: list[CheckKind] = []
    for raw in value.split(","):
        name = raw.strip().lower()
        if not name:
            continue
        kind = CheckKind(name)
        if kind not in checks:
            checks.append(kind)
    return checks
