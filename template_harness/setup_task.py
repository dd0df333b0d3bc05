"""One-time scaffold + install pipeline shared by every check of a template.

A :class:`SetupTask` starts its pipeline on the first :meth:`SetupTask.ensure`
call and hands the same outcome to every caller afterwards, concurrent or
late.  :class:`SetupRegistry` keeps exactly one task per template name.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from pathlib import Path

from rich.console import Console

from .config import HarnessConfig
from .errors import SetupError
from .templates import TemplateDescriptor
from .utils import format_command, run_command

console = Console()


class SetupState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class SetupTask:
    """Memoized (scaffold -> install) pipeline for one template.

    Parameters
    ----------
    template:
        The template to generate.
    config:
        Harness configuration (commands, fixtures directory, timeouts).
    revision:
        Source revision passed to the scaffolding CLI via ``--commit``.
    """

    def __init__(self, template: TemplateDescriptor, config: HarnessConfig, revision: str) -> None:
        self.template = template
        self.config = config
        self.revision = revision
        self.state = SetupState.PENDING
        self.error: SetupError | None = None
        self.invocations = 0
        self._task: asyncio.Task[None] | None = None

    @property
    def project_dir(self) -> Path:
        return self.config.project_dir(self.template.name)

    @property
    def done(self) -> bool:
        return self.state in (SetupState.SUCCEEDED, SetupState.FAILED)

    async def ensure(self) -> None:
        """Wait for the pipeline, starting it if nobody has yet.

        Raises:
            SetupError: The (single) pipeline run failed.
        """
        if self._task is None:
            # No await between the check and the assignment, so concurrent
            # first callers on the loop cannot both get here.
            self.state = SetupState.RUNNING
            self._task = asyncio.ensure_future(self._run())
        await asyncio.shield(self._task)

    async def _run(self) -> None:
        self.invocations += 1
        try:
            await self._scaffold()
            await self._install()
        except SetupError as exc:
            self.state = SetupState.FAILED
            self.error = exc
            console.print(f"[red]{self.template.name}: setup failed ({exc.step})[/red]")
            raise
        except BaseException:
            self.state = SetupState.FAILED
            raise
        self.state = SetupState.SUCCEEDED
        console.print(f"[dim]{self.template.name}: setup complete[/dim]")

    async def _scaffold(self) -> None:
        name = self.template.name
        cmd = [
            *self.config.commands.scaffold,
            name,
            "--template",
            name,
            "--commit",
            self.revision,
            "--force-overwrite",
        ]
        self.config.fixtures_dir.mkdir(parents=True, exist_ok=True)
        await self._step("scaffold", cmd, self.config.fixtures_dir)

    async def _install(self) -> None:
        await self._step("install", list(self.config.commands.install), self.project_dir)

    async def _step(self, step: str, cmd: list[str], cwd: Path) -> None:
        console.print(f"[dim]{self.template.name}: {step} -> {format_command(cmd)}[/dim]")
        returncode, _stdout, stderr = await run_command(
            cmd, cwd=cwd, timeout=self.config.setup_timeout
        )
        if returncode != 0:
            raise SetupError(
                self.template.name,
                step,
                command=format_command(cmd),
                returncode=returncode,
                stderr=stderr,
            )


class SetupRegistry:
    """Hands out the single :class:`SetupTask` registered for each template."""

    def __init__(self, config: HarnessConfig, revision: str) -> None:
        self.config = config
        self.revision = revision
        self._tasks: dict[str, SetupTask] = {}

    def get(self, template: TemplateDescriptor) -> SetupTask:
        task = self._tasks.get(template.name)
        if task is None:
            task = SetupTask(template, self.config, self.revision)
            self._tasks[template.name] = task
        return task

    async def ensure(self, template: TemplateDescriptor) -> None:
        await self.get(template).ensure()

    def __len__(self) -> int:
        return len(self._tasks)
