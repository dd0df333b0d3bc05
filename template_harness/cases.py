"""Validation cases: one per (template, check kind).

Each case awaits its template's shared :class:`SetupTask` before running its
check, and converts whatever happens into a :class:`CaseResult`.
"""

from __future__ import annotations

import time
from pathlib import Path

from .checks import check_build, check_dev_server, check_structure
from .config import HarnessConfig
from .errors import HarnessError
from .results import CaseResult, CheckKind
from .setup_task import SetupTask
from .templates import TemplateDescriptor


class ValidationCase:
    """Base class for a check bound to one template and its setup task."""

    kind: CheckKind

    def __init__(self, template: TemplateDescriptor, setup: SetupTask, config: HarnessConfig) -> None:
        self.template = template
        self.setup = setup
        self.config = config

    @property
    def project_dir(self) -> Path:
        return self.config.project_dir(self.template.name)

    @property
    def label(self) -> str:
        return f"{self.template.name} ({self.kind.value})"

    async def run(self) -> CaseResult:
        """Await setup, run the check, and report pass/fail."""
        start = time.monotonic()
        try:
            await self.setup.ensure()
            message = await self.check()
            passed = True
        except HarnessError as exc:
            message = exc.message
            passed = False
        except Exception as exc:
            message = f"{type(exc).__name__}: {exc}"
            passed = False
        return CaseResult(
            template=self.template.name,
            check=self.kind,
            passed=passed,
            message=message,
            duration_seconds=round(time.monotonic() - start, 3),
        )

    async def check(self) -> str:
        """Run the check; return a short success note or raise HarnessError."""
        raise NotImplementedError


class StructureCase(ValidationCase):
    kind = CheckKind.STRUCTURE

    async def check(self) -> str:
        checklist = self.config.checklist
        check_structure(self.project_dir, checklist.required, checklist.forbidden)
        return f"{len(checklist.required)} required present, {len(checklist.forbidden)} forbidden absent"


class DevServerCase(ValidationCase):
    kind = CheckKind.DEV

    def __init__(
        self,
        template: TemplateDescriptor,
        setup: SetupTask,
        config: HarnessConfig,
        port: int,
    ) -> None:
        super().__init__(template, setup, config)
        self.port = port

    async def check(self) -> str:
        result = await check_dev_server(
            self.project_dir,
            self.port,
            command=self.config.commands.dev,
            markers=self.config.ready_markers,
            idle_timeout=self.config.idle_timeout,
            probe_timeout=self.config.probe_timeout,
            terminate_timeout=self.config.terminate_timeout,
        )
        return f"port {self.port} responded {result.status_code} ({len(result.body)} chars)"


class BuildCase(ValidationCase):
    kind = CheckKind.BUILD

    async def check(self) -> str:
        checklist = self.config.checklist
        built = await check_build(
            self.project_dir,
            self.config.commands.build,
            checklist.build_output_dir,
            checklist.build_artifacts,
            timeout=self.config.build_timeout,
        )
        return f"{len(built)} path(s) built"
