"""Result models for validation cases and whole harness runs.

Provides Pydantic v2 models for the outcome of a single validation case, the
HTTP probe result of the dev check, and the aggregated report of a run.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, computed_field


class CheckKind(str, Enum):
    """The three validation cases run against every template."""

    STRUCTURE = "structure"
    DEV = "dev"
    BUILD = "build"


class ProbeResult(BaseModel):
    """Response captured from the dev server probe."""

    status_code: int
    body: str = ""


# ---------------------------------------------------------------------------
# Per-case result
# ---------------------------------------------------------------------------

class CaseResult(BaseModel):
    """Pass/fail outcome of one validation case for one template."""

    template: str = Field(..., description="Template name")
    check: CheckKind = Field(..., description="Which validation case produced this result")
    passed: bool = Field(default=False)
    message: str = Field(default="", description="Human-readable diagnostic")
    duration_seconds: float = Field(default=0.0, ge=0.0)

    @property
    def label(self) -> str:
        """Display name such as ``minimal (dev)``."""
        return f"{self.template} ({self.check.value})"


# ---------------------------------------------------------------------------
# Run report
# ---------------------------------------------------------------------------

class HarnessReport(BaseModel):
    """Every case result of one harness run."""

    cases: list[CaseResult] = Field(default_factory=list)
    revision: str = Field(default="", description="Template revision under test")
    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(),
        description="ISO-8601 timestamp of when the report was generated",
    )
    metadata: dict[str, Any] = Field(default_factory=dict)

    @computed_field  # type: ignore[misc]
    @property
    def all_passed(self) -> bool:
        """True when at least one case ran and none failed."""
        return bool(self.cases) and all(case.passed for case in self.cases)

    @property
    def failed_cases(self) -> list[CaseResult]:
        return [case for case in self.cases if not case.passed]

    def for_template(self, template: str) -> list[CaseResult]:
        """Return the results belonging to *template*, in execution order."""
        return [case for case in self.cases if case.template == template]

    # -- Serialisation helpers -----------------------------------------------

    def to_json(self, indent: int = 2) -> str:
        """Serialise the full report to a JSON string."""
        return self.model_dump_json(indent=indent)

    def save(self, path: Path) -> None:
        """Persist the report to a JSON file, creating parent directories as needed."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_json(), encoding="utf-8")

    @classmethod
    def load(cls, path: Path) -> "HarnessReport":
        """Load a previously-saved report from a JSON file."""
        raw = Path(path).read_text(encoding="utf-8")
        return cls.model_validate_json(raw)

    # -- Summary helpers -----------------------------------------------------

    def summary_dict(self) -> dict[str, Any]:
        """Return a condensed summary suitable for logs and CI output."""
        templates = sorted({case.template for case in self.cases})
        return {
            "all_passed": self.all_passed,
            "revision": self.revision,
            "timestamp": self.timestamp,
            "templates": len(templates),
            "total": len(self.cases),
            "passed": sum(1 for case in self.cases if case.passed),
            "failed": len(self.failed_cases),
        }

    def summary_text(self) -> str:
        """Human-readable multi-line summary."""
        status = "PASSED" if self.all_passed else "FAILED"
        lines = [f"Template Harness  [{status}]  {self.revision or '-'}  {self.timestamp}", "-" * 60]
        for case in self.cases:
            mark = "ok" if case.passed else "FAIL"
            line = f"  {case.label:32s} ({case.duration_seconds:.1f}s)  [{mark}]"
            if not case.passed and case.message:
                line = f"{line}  {case.message.splitlines()[0]}"
            lines.append(line)
        lines.append("-" * 60)
        return "\n".join(lines)
