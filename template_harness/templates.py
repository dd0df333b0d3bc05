"""Template descriptors and the external template list."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import ConfigError


class TemplateDescriptor(BaseModel):
    """One template under test.

    The name doubles as the scaffolding CLI argument and as the fixture
    directory name, so it must be a single path segment.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)

    @field_validator("name")
    @classmethod
    def _single_segment(cls, value: str) -> str:
        value = value.strip()
        if not value or value in (".", "..") or "/" in value or "\\" in value:
            raise ValueError(f"template name must be a single path segment, got {value!r}")
        return value


def _entry_name(entry: Any) -> str:
    if isinstance(entry, str):
        return entry
    if isinstance(entry, dict):
        # The scaffolder's own list uses {"title": ..., "value": ...}.
        for key in ("name", "value"):
            if isinstance(entry.get(key), str):
                return entry[key]
    raise ConfigError(f"Unrecognised template entry: {entry!r}")


def parse_templates(entries: list[Any]) -> list[TemplateDescriptor]:
    """Turn raw names / objects into descriptors, dropping duplicates in order."""
    templates: list[TemplateDescriptor] = []
    seen: set[str] = set()
    for entry in entries:
        try:
            descriptor = TemplateDescriptor(name=_entry_name(entry))
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc
        if descriptor.name in seen:
            continue
        seen.add(descriptor.name)
        templates.append(descriptor)
    return templates


def load_templates(path: str | Path) -> list[TemplateDescriptor]:
    """Load the template list from a JSON file.

    Accepts either a top-level array or an object with a ``"templates"``
    array.  Entries are names or ``{"name"|"value": ...}`` objects.

    Raises:
        ConfigError: If the file is missing, malformed, or has bad entries.
    """
    file_path = Path(path)
    try:
        data = json.loads(file_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigError(f"Templates file not found: {file_path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Templates file is not valid JSON: {file_path} ({exc})") from exc

    if isinstance(data, dict):
        data = data.get("templates")
    if not isinstance(data, list):
        raise ConfigError(f"Templates file must contain a list of templates: {file_path}")
    return parse_templates(data)
