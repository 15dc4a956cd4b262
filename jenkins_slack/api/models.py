"""Typed views of Jenkins REST API JSON objects.

WHY: Jenkins answers with loosely-structured JSON (`_class` tags, optional
blocks, parameter definitions hidden in `property` or `actions`). Typed
dataclasses keep that mess in one place and give command handlers plain
attributes to work with.

HOW: Each dataclass has a from_dict() factory that tolerates missing
optional fields. Only the fields the bot actually uses are kept.

RULES:
- from_dict() never raises on missing optional fields
- Build numbers are int; URLs are str ("" when absent)
- ParameterDefinition.type is the Jenkins class name without the package
  (e.g. "StringParameterDefinition")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class ParameterDefinition:
    """One declared build parameter of a parameterized job."""

    name: str
    type: str
    default: Optional[str] = None
    description: str = ""
    choices: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ParameterDefinition:
        """Parse a Jenkins parameterDefinitions entry.

        RULES:
        - type comes from "type" or, failing that, the tail of "_class"
        - default comes from defaultParameterValue.value, stringified;
          booleans become "true"/"false"
        """
        param_type = data.get("type") or data.get("_class", "").rsplit(".", 1)[-1]
        default_block = data.get("defaultParameterValue") or {}
        default_value = default_block.get("value")
        if isinstance(default_value, bool):
            default = "true" if default_value else "false"
        elif default_value is None:
            default = None
        else:
            default = str(default_value)

        return cls(
            name=data["name"],
            type=param_type,
            default=default,
            description=data.get("description") or "",
            choices=[str(c) for c in data.get("choices") or []],
        )


@dataclass
class JobInfo:
    """A Jenkins job (or folder) as returned by job/<path>/api/json."""

    name: str
    full_name: str
    url: str
    buildable: bool = True
    color: str = ""
    last_build_number: Optional[int] = None
    parameters: List[ParameterDefinition] = field(default_factory=list)

    @property
    def is_parameterized(self) -> bool:
        return bool(self.parameters)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> JobInfo:
        """Parse job JSON, collecting parameter definitions.

        HOW: Parameter definitions live in the ParametersDefinitionProperty
        entry of "property" (current Jenkins) or of "actions" (older
        versions). Both are scanned; the first non-empty list wins.
        """
        parameters: List[ParameterDefinition] = []
        for section in ("property", "actions"):
            for entry in data.get(section) or []:
                if not isinstance(entry, dict):
                    continue
                definitions = entry.get("parameterDefinitions")
                if definitions:
                    parameters = [ParameterDefinition.from_dict(d) for d in definitions]
                    break
            if parameters:
                break

        last_build = data.get("lastBuild") or {}
        return cls(
            name=data.get("name", ""),
            full_name=data.get("fullName") or data.get("name", ""),
            url=data.get("url", ""),
            buildable=bool(data.get("buildable", True)),
            color=data.get("color") or "",
            last_build_number=last_build.get("number"),
            parameters=parameters,
        )


@dataclass
class Artifact:
    """A file archived by a build."""

    file_name: str
    relative_path: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Artifact:
        return cls(
            file_name=data.get("fileName", ""),
            relative_path=data.get("relativePath", ""),
        )


@dataclass
class BuildRecord:
    """Metadata of one build of a job.

    RULES:
    - job_name is the slash-separated job path the caller asked for
    - result is None while the build is running
    - console_output is filled only by callers that fetched it
    """

    job_name: str
    number: int
    url: str
    result: Optional[str] = None
    building: bool = False
    display_name: str = ""
    console_output: Optional[str] = None
    artifacts: List[Artifact] = field(default_factory=list)

    @classmethod
    def from_dict(cls, job_name: str, data: Dict[str, Any]) -> BuildRecord:
        return cls(
            job_name=job_name,
            number=int(data.get("number", 0)),
            url=data.get("url", ""),
            result=data.get("result"),
            building=bool(data.get("building", False)),
            display_name=data.get("fullDisplayName") or data.get("displayName") or "",
            artifacts=[Artifact.from_dict(a) for a in data.get("artifacts") or []],
        )


@dataclass
class QueueItem:
    """A queued build request (queue/item/<id>/api/json).

    RULES:
    - executable_url is "" until the build has started executing
    - cancelled is True when the request was removed from the queue
    """

    id: int
    why: str = ""
    cancelled: bool = False
    executable_number: Optional[int] = None
    executable_url: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> QueueItem:
        executable = data.get("executable") or {}
        return cls(
            id=int(data.get("id", 0)),
            why=data.get("why") or "",
            cancelled=bool(data.get("cancelled", False)),
            executable_number=executable.get("number"),
            executable_url=executable.get("url") or "",
        )


@dataclass
class PluginInfo:
    """An installed Jenkins plugin."""

    short_name: str
    long_name: str
    version: str
    active: bool = True
    has_update: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PluginInfo:
        return cls(
            short_name=data.get("shortName", ""),
            long_name=data.get("longName") or data.get("shortName", ""),
            version=str(data.get("version", "")),
            active=bool(data.get("active", True)),
            has_update=bool(data.get("hasUpdate", False)),
        )
