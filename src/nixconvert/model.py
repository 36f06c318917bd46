# model.py
from __future__ import annotations

import copy
import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional


PIPELINE_KIND = "pipeline"

# Role markers in precedence order (first match wins)
JOBSET_MARKER = "nix-jobset"
BUILD_MARKER = "nix-build"
POST_BUILD_MARKER = "nix-post-build"
ROLE_MARKERS = (JOBSET_MARKER, BUILD_MARKER, POST_BUILD_MARKER)

# Trigger parameter carrying the serialized jobset documents
EVAL_JOBSET_PARAM = "nix_eval_jobset"

CUSTOM_EVENT = "custom"

# Environment key set on every rendered build stage
ARTIFACT_PATH_ENV = "artifactPath"


class StageRole(enum.Enum):
    JOBSET = "jobset"
    BUILD = "build"
    POST_BUILD = "post-build"
    OTHER = "other"


MARKER_ROLES = {
    JOBSET_MARKER: StageRole.JOBSET,
    BUILD_MARKER: StageRole.BUILD,
    POST_BUILD_MARKER: StageRole.POST_BUILD,
}


@dataclass
class Resource:
    """
    One configuration document.

    The fields the converter reads or rewrites are typed attributes; everything
    else is kept verbatim in `extra`. `key_order` remembers the original key
    order so `to_dict()` reproduces the document layout.

    A recognized key whose value has an unexpected type (e.g. a numeric
    `name`) is treated as unrecognized and kept in `extra`.
    """
    kind: Optional[str] = None
    name: Optional[str] = None
    environment: Optional[Dict[str, Any]] = None
    depends_on: Optional[List[Any]] = None
    markers: Dict[str, bool] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)
    key_order: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[Any, Any]) -> Resource:
        res = cls()
        for key, value in data.items():
            res.key_order.append(key)
            if key == "kind" and isinstance(value, str):
                res.kind = value
            elif key == "name" and isinstance(value, str):
                res.name = value
            elif key == "environment" and isinstance(value, dict):
                res.environment = dict(value)
            elif key == "depends_on" and isinstance(value, list):
                res.depends_on = list(value)
            elif key in ROLE_MARKERS and isinstance(value, bool):
                res.markers[key] = value
            else:
                res.extra[key] = value
        return res

    def to_dict(self) -> Dict[Any, Any]:
        typed = {
            "kind": self.kind,
            "name": self.name,
            "environment": self.environment,
            "depends_on": self.depends_on,
        }
        out: Dict[Any, Any] = {}
        for key in self.key_order:
            # a typed value set after parsing replaces a mistyped original
            if key in typed and typed[key] is not None:
                out[key] = typed[key]
            elif key in self.extra:
                out[key] = self.extra[key]
            elif key in self.markers:
                out[key] = self.markers[key]
        # fields set after parsing go last
        for key, value in typed.items():
            if value is not None and key not in out:
                out[key] = value
        for key, value in self.markers.items():
            if key not in out:
                out[key] = value
        for key, value in self.extra.items():
            if key not in out:
                out[key] = value
        return out

    @property
    def is_pipeline(self) -> bool:
        return self.kind == PIPELINE_KIND

    def has_marker(self, marker: str) -> bool:
        return self.markers.get(marker) is True

    def strip_markers(self) -> None:
        for marker in list(self.markers):
            del self.markers[marker]
        self.key_order = [k for k in self.key_order if k not in ROLE_MARKERS or k in self.extra]

    def clone(self) -> Resource:
        return copy.deepcopy(self)

    def label(self) -> str:
        """Name for error messages: the name field, or the raw contents."""
        return self.name if self.name is not None else repr(self.to_dict())


@dataclass(frozen=True)
class Job:
    """One entry of the evaluation manifest."""
    name: str
    artifact_path: str
    dependency_paths: List[str] = field(default_factory=list)

    @property
    def buildable(self) -> bool:
        # no dependency paths means nothing to build
        return len(self.dependency_paths) > 0


@dataclass
class JobManifest:
    """Job name -> Job, merged from every evaluation step."""
    jobs: Dict[str, Job] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.jobs)

    def __iter__(self) -> Iterator[Job]:
        return iter(self.jobs.values())

    def __contains__(self, name: object) -> bool:
        return name in self.jobs

    def __getitem__(self, name: str) -> Job:
        return self.jobs[name]

    def buildable(self) -> List[Job]:
        return [j for j in self.jobs.values() if j.buildable]


@dataclass
class ConversionRequest:
    """Everything the converter needs from one incoming request."""
    original_config: str
    repo_namespace: str
    repo_name: str
    build_ref: str = ""
    repo_branch: str = ""
    build_event: str = ""
    trigger_params: Dict[str, str] = field(default_factory=dict)

    # identifying fields, used for logging only
    repo_config_path: str = ""
    build_after: str = ""
    build_before: str = ""
    build_action: str = ""
    build_source: str = ""
    build_target: str = ""
    build_trigger: str = ""


class Outcome(enum.Enum):
    PASSTHROUGH = "passthrough"  # nothing dynamic, original text returned
    REPLAYED = "replayed"        # stored evaluation payload returned
    RENDERED = "rendered"


@dataclass(frozen=True)
class ConversionResult:
    data: str
    outcome: Outcome
    job_count: int = 0

    @property
    def changed(self) -> bool:
        return self.outcome is not Outcome.PASSTHROUGH
