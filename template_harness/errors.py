"""Error taxonomy for the template harness.

Every failure a validation case can hit is a :class:`HarnessError` subclass
carrying a human-readable message.  The driver turns these into failed
:class:`~template_harness.results.CaseResult` entries; nothing is retried.
"""

from __future__ import annotations


class HarnessError(Exception):
    """Base class for all harness failures."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigError(HarnessError):
    """Raised when the harness cannot be configured (bad template list, no revision)."""


class SetupError(HarnessError):
    """Raised when scaffolding or dependency installation exits non-zero."""

    def __init__(
        self,
        template: str,
        step: str,
        command: str = "",
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        self.template = template
        self.step = step
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        message = f"{step} failed for {template} (exit {returncode}): {command}"
        if stderr:
            message = f"{message}\n{stderr}"
        super().__init__(message)


class StructuralAssertionError(HarnessError):
    """Raised when required paths are missing or forbidden paths remain."""

    def __init__(self, violations: list[str]) -> None:
        self.violations = list(violations)
        super().__init__("; ".join(self.violations))


class ServerStartTimeoutError(HarnessError):
    """Raised when the dev server stays silent for a whole idle period."""

    def __init__(self, message: str = "dev server failed to start.") -> None:
        super().__init__(message)


class ServerStartupError(HarnessError):
    """Raised when the dev server writes to stderr or exits before it is ready."""

    def __init__(self, message: str, returncode: int | None = None) -> None:
        self.returncode = returncode
        super().__init__(message)


class ProbeError(HarnessError):
    """Raised when the HTTP probe against a ready dev server fails."""

    def __init__(
        self,
        message: str,
        url: str = "",
        status_code: int | None = None,
    ) -> None:
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class BuildError(HarnessError):
    """Raised when the production build exits non-zero."""

    def __init__(self, command: str, returncode: int, stderr: str = "") -> None:
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        message = f"build failed (exit {returncode}): {command}"
        if stderr:
            message = f"{message}\n{stderr}"
        super().__init__(message)


class ArtifactMissingError(HarnessError):
    """Raised when required build artifacts are absent from the output directory."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = list(missing)
        super().__init__("; ".join(f"didn't build {artifact}" for artifact in self.missing))
