"""Template harness driver.

Validates every template end-to-end: one shared scaffold + install setup per
template, followed by the structure, dev-server and build checks.  Templates
run concurrently; the checks of one template run one after another.

Usage::

    python -m template_harness minimal blog portfolio
    python -m template_harness --templates-file templates.json --checks structure,build
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from rich.panel import Panel

from .cases import BuildCase, DevServerCase, StructureCase, ValidationCase
from .config import HarnessConfig, parse_checks
from .errors import ConfigError
from .results import CaseResult, CheckKind, HarnessReport
from .setup_task import SetupRegistry, SetupTask
from .templates import TemplateDescriptor, load_templates, parse_templates
from .utils import (
    allocate_port,
    check_ports_available,
    console,
    format_duration,
    print_error,
    print_success,
    print_summary_table,
    print_warning,
    resolve_revision,
)


class TemplateHarness:
    """Runs every validation case for a list of templates.

    Attributes:
        config: Harness configuration.
        revision: Template revision under test (resolved by :meth:`run`).
        registry: One :class:`SetupTask` per template (created by :meth:`run`).
    """

    def __init__(self, config: HarnessConfig) -> None:
        self.config = config
        self.revision = ""
        self.registry: SetupRegistry | None = None

    def build_cases(
        self, index: int, template: TemplateDescriptor, setup: SetupTask
    ) -> list[ValidationCase]:
        """Instantiate the configured cases for the template at *index*."""
        cases: list[ValidationCase] = []
        for kind in self.config.checks:
            if kind is CheckKind.STRUCTURE:
                cases.append(StructureCase(template, setup, self.config))
            elif kind is CheckKind.DEV:
                port = allocate_port(index, self.config.base_port)
                cases.append(DevServerCase(template, setup, self.config, port))
            elif kind is CheckKind.BUILD:
                cases.append(BuildCase(template, setup, self.config))
        return cases

    async def run(self, templates: list[TemplateDescriptor]) -> HarnessReport:
        """Validate *templates* and return the collected report.

        Raises:
            ConfigError: No templates, or the revision cannot be resolved.
        """
        if not templates:
            raise ConfigError("No templates to validate")
        last_port = allocate_port(len(templates) - 1, self.config.base_port)
        if CheckKind.DEV in self.config.checks and last_port > 65535:
            raise ConfigError(f"Port range exhausted: {len(templates)} templates from base port {self.config.base_port}")

        self.revision = await resolve_revision(self.config.commit)
        self.registry = SetupRegistry(self.config, self.revision)
        self.config.fixtures_dir.mkdir(parents=True, exist_ok=True)

        console.print(
            Panel(
                f"Templates : {', '.join(t.name for t in templates)}\n"
                f"Revision  : {self.revision}\n"
                f"Fixtures  : {self.config.fixtures_dir.resolve()}\n"
                f"Checks    : {', '.join(k.value for k in self.config.checks)}",
                title="[bold]Template Harness[/bold]",
                border_style="bright_cyan",
            )
        )
        await self._preflight(templates)

        semaphore = asyncio.Semaphore(self.config.max_parallel_templates)
        per_template = await asyncio.gather(
            *(self._run_template(index, template, semaphore) for index, template in enumerate(templates))
        )

        report = HarnessReport(
            cases=[result for results in per_template for result in results],
            revision=self.revision,
            metadata={
                "fixtures_dir": str(self.config.fixtures_dir),
                "templates": [t.name for t in templates],
            },
        )
        self._print_summary(report)
        return report

    async def _preflight(self, templates: list[TemplateDescriptor]) -> None:
        """Warn about dev ports that already have a listener."""
        if CheckKind.DEV not in self.config.checks:
            return
        ports = [allocate_port(i, self.config.base_port) for i in range(len(templates))]
        status = await check_ports_available(ports)
        busy = [port for port, available in status.items() if not available]
        if busy:
            print_warning(
                f"Ports already in use: {', '.join(str(p) for p in busy)}. "
                "Dev checks on these ports may probe the wrong server."
            )

    async def _run_template(
        self,
        index: int,
        template: TemplateDescriptor,
        semaphore: asyncio.Semaphore,
    ) -> list[CaseResult]:
        assert self.registry is not None
        async with semaphore:
            setup = self.registry.get(template)
            results: list[CaseResult] = []
            for case in self.build_cases(index, template, setup):
                result = await case.run()
                self._log_case(result)
                results.append(result)
            return results

    @staticmethod
    def _log_case(result: CaseResult) -> None:
        duration = format_duration(result.duration_seconds)
        if result.passed:
            console.print(f"[green]PASS[/green] {result.label} ({duration})")
        else:
            console.print(f"[red]FAIL[/red] {result.label} ({duration}): {result.message}")

    @staticmethod
    def _print_summary(report: HarnessReport) -> None:
        rows = [
            (
                case.template,
                case.check.value,
                "[green]pass[/green]" if case.passed else "[red]FAIL[/red]",
                case.message.splitlines()[0] if case.message else "",
            )
            for case in report.cases
        ]
        print_summary_table(rows, title="Template Harness Results")
        summary = report.summary_dict()
        if report.all_passed:
            print_success(f"All {summary['total']} case(s) passed.")
        else:
            print_error(f"{summary['failed']} of {summary['total']} case(s) failed.")


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="template-harness",
        description="Validate that scaffolded project templates generate, serve, and build",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  template-harness minimal blog\n"
            "  template-harness --templates-file templates.json --checks structure,build\n"
            "  template-harness minimal --commit main --report out/report.json\n"
        ),
    )
    parser.add_argument("templates", nargs="*", help="Template names to validate")
    parser.add_argument("--templates-file", "-f", default=None, help="JSON file listing templates")
    parser.add_argument("--config", default=None, help="JSON file with a saved harness configuration")
    parser.add_argument("--fixtures-dir", default=None, help="Where templates are generated")
    parser.add_argument("--commit", default=None, help="Template revision (default: HARNESS_COMMIT, GITHUB_SHA, git HEAD)")
    parser.add_argument("--base-port", type=int, default=None, help="First dev-server port")
    parser.add_argument("--idle-timeout", type=float, default=None, help="Seconds of dev-server silence allowed")
    parser.add_argument("--checks", default=None, help="Comma-separated checks: structure,dev,build")
    parser.add_argument("--max-parallel", type=int, default=None, help="Templates validated at once")
    parser.add_argument("--report", default=None, help="Write the JSON report to this path")
    return parser


def _config_from_args(args: argparse.Namespace) -> HarnessConfig:
    config = HarnessConfig.load(Path(args.config)) if args.config else HarnessConfig.from_env()
    overrides: dict[str, object] = {}
    if args.fixtures_dir:
        overrides["fixtures_dir"] = Path(args.fixtures_dir)
    if args.commit:
        overrides["commit"] = args.commit
    if args.base_port is not None:
        overrides["base_port"] = args.base_port
    if args.idle_timeout is not None:
        overrides["idle_timeout"] = args.idle_timeout
    if args.checks:
        overrides["checks"] = parse_checks(args.checks)
    if args.max_parallel is not None:
        overrides["max_parallel_templates"] = args.max_parallel
    if not overrides:
        return config
    return HarnessConfig.model_validate({**config.model_dump(), **overrides})


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for ``template-harness`` / ``python -m template_harness``."""
    args = _build_parser().parse_args(argv)

    try:
        config = _config_from_args(args)
        templates = parse_templates(args.templates)
        if args.templates_file:
            templates = parse_templates(
                [t.name for t in load_templates(args.templates_file)] + [t.name for t in templates]
            )
        report = asyncio.run(TemplateHarness(config).run(templates))
    except (ConfigError, ValueError) as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        return 1

    if args.report:
        report.save(Path(args.report))
        console.print(f"Report written to {args.report}")

    return 0 if report.all_passed else 1


if __name__ == "__main__":
    sys.exit(main())
