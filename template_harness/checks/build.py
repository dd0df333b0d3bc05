"""Production build check: run the build, then inspect the output tree."""

from __future__ import annotations

from pathlib import Path

from rich.console import Console

from ..errors import ArtifactMissingError, BuildError
from ..utils import format_command, run_command

console = Console()


def enumerate_files(root: str | Path) -> frozenset[str]:
    """Return every file and directory under *root* as relative POSIX paths.

    A missing *root* yields an empty set.
    """
    root = Path(root)
    if not root.is_dir():
        return frozenset()
    return frozenset(path.relative_to(root).as_posix() for path in root.rglob("*"))


async def check_build(
    project_dir: str | Path,
    command: list[str],
    output_dir: str,
    artifacts: list[str],
    timeout: float = 600,
) -> frozenset[str]:
    """Build the project and verify the required artifacts were produced.

    Args:
        project_dir: Generated project root.
        command: Build command argv.
        output_dir: Build output directory, relative to *project_dir*.
        artifacts: Paths (relative to *output_dir*) that must be present.
        timeout: Seconds before the build is killed.

    Returns:
        The enumerated build output.

    Raises:
        BuildError: The build exited non-zero.
        ArtifactMissingError: One or more required artifacts are absent.
    """
    project_dir = Path(project_dir)
    returncode, _stdout, stderr = await run_command(command, cwd=project_dir, timeout=timeout)
    if returncode != 0:
        raise BuildError(format_command(command), returncode, stderr)

    built = enumerate_files(project_dir / output_dir)
    console.print(f"[dim]{project_dir.name}: {len(built)} path(s) under {output_dir}/[/dim]")

    missing = [artifact for artifact in artifacts if artifact.strip("/") not in built]
    if missing:
        raise ArtifactMissingError(missing)
    return built
