"""Template harness -- end-to-end validation of scaffolded project templates.

Each template is generated and installed once, then checked three ways:
its file-system shape, its dev server (spawn, readiness, HTTP probe), and its
production build.

Quick usage::

    from template_harness import HarnessConfig, TemplateDescriptor, TemplateHarness

    harness = TemplateHarness(HarnessConfig(fixtures_dir=Path("fixtures")))
    report = await harness.run([TemplateDescriptor(name="minimal")])
    print(report.summary_text())
"""

from .config import ChecklistConfig, CommandConfig, HarnessConfig
from .errors import (
    ArtifactMissingError,
    BuildError,
    ConfigError,
    HarnessError,
    ProbeError,
    ServerStartTimeoutError,
    ServerStartupError,
    SetupError,
    StructuralAssertionError,
)
from .harness import TemplateHarness, main
from .results import CaseResult, CheckKind, HarnessReport, ProbeResult
from .setup_task import SetupRegistry, SetupState, SetupTask
from .templates import TemplateDescriptor, load_templates

__all__ = [
    "TemplateHarness",
    "main",
    "HarnessConfig",
    "CommandConfig",
    "ChecklistConfig",
    "TemplateDescriptor",
    "load_templates",
    "SetupTask",
    "SetupRegistry",
    "SetupState",
    "CaseResult",
    "CheckKind",
    "HarnessReport",
    "ProbeResult",
    "HarnessError",
    "ConfigError",
    "SetupError",
    "StructuralAssertionError",
    "ServerStartTimeoutError",
    "ServerStartupError",
    "ProbeError",
    "BuildError",
    "ArtifactMissingError",
]
