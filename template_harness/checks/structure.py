"""File-system shape check for a generated project."""

from __future__ import annotations

from pathlib import Path

from ..errors import StructuralAssertionError


def find_violations(project_dir: Path, required: list[str], forbidden: list[str]) -> list[str]:
    """Return one message per missing required or leftover forbidden path."""
    violations: list[str] = []
    for rel in required:
        if not (project_dir / rel).exists():
            violations.append(f"missing {rel}")
    for rel in forbidden:
        # dangling symlinks count as leftovers
        if (project_dir / rel).exists() or (project_dir / rel).is_symlink():
            violations.append(f"failed to clean up {rel}")
    return violations


def check_structure(project_dir: str | Path, required: list[str], forbidden: list[str]) -> None:
    """Assert the required paths exist and the forbidden ones do not.

    Every path is checked; all violations are reported together.

    Raises:
        StructuralAssertionError: At least one path violated its checklist.
    """
    violations = find_violations(Path(project_dir), required, forbidden)
    if violations:
        raise StructuralAssertionError(violations)
