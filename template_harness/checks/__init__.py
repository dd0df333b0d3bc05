"""Template harness -- validation checks.

Public API
----------
.. autofunction:: check_structure
.. autofunction:: check_dev_server
.. autofunction:: check_build
"""

from .build import check_build, enumerate_files
from .dev_server import (
    LivenessMonitor,
    LivenessState,
    ServerProcessHandle,
    check_dev_server,
    probe_http,
    spawn_dev_server,
    terminate_process,
    wait_until_ready,
)
from .structure import check_structure, find_violations

__all__ = [
    # Structure
    "check_structure",
    "find_violations",
    # Dev server
    "check_dev_server",
    "spawn_dev_server",
    "wait_until_ready",
    "probe_http",
    "terminate_process",
    "LivenessMonitor",
    "LivenessState",
    "ServerProcessHandle",
    # Build
    "check_build",
    "enumerate_files",
]
