# resources.py
from __future__ import annotations

import re
from typing import Iterable, List, NamedTuple, Optional

import yaml

from .errors import ParseError
from .model import MARKER_ROLES, ROLE_MARKERS, Resource, StageRole


class ConfigLoader(yaml.SafeLoader):
    """
    SafeLoader with YAML 1.2 core scalar typing, as Drone reads configs.

    Only true/false and plain decimal integers are typed implicitly. Words
    like `no`/`on`, sexagesimal `1:30`, octal-looking `0755`, floats and
    dates stay strings so they are written back exactly as given.
    """


_YAML11_TAGS = {
    "tag:yaml.org,2002:bool",
    "tag:yaml.org,2002:int",
    "tag:yaml.org,2002:float",
    "tag:yaml.org,2002:timestamp",
}

ConfigLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag not in _YAML11_TAGS]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}
ConfigLoader.add_implicit_resolver(
    "tag:yaml.org,2002:bool",
    re.compile(r"^(?:true|True|TRUE|false|False|FALSE)$"),
    list("tTfF"),
)
ConfigLoader.add_implicit_resolver(
    "tag:yaml.org,2002:int",
    re.compile(r"^[-+]?(?:0|[1-9][0-9]*)$"),
    list("-+0123456789"),
)


class ConfigDumper(yaml.SafeDumper):
    """
    SafeDumper that never emits anchors.

    It keeps the YAML 1.1 resolvers, so any string another parser could read
    as a bool or number (`no`, `1:30`, `0755`) is written quoted.
    """

    def ignore_aliases(self, data):
        return True


class Classified(NamedTuple):
    jobsets: List[Resource]
    builds: List[Resource]
    post_builds: List[Resource]
    others: List[Resource]


_DOCUMENT_BOUNDARY = re.compile(r"^(?:---|\.\.\.)(?:\s|$)")


def _document_text(text: str, error: yaml.YAMLError) -> Optional[str]:
    """Return the source of the document holding a YAML error's position."""
    mark = getattr(error, "context_mark", None) or getattr(error, "problem_mark", None)
    if mark is None:
        return None
    lines = text.splitlines(keepends=True)
    if not lines:
        return None
    line = min(mark.line, len(lines) - 1)
    start = 0
    for i in range(line, -1, -1):
        if _DOCUMENT_BOUNDARY.match(lines[i]):
            start = i
            break
    end = len(lines)
    for i in range(line + 1, len(lines)):
        if _DOCUMENT_BOUNDARY.match(lines[i]):
            end = i
            break
    return "".join(lines[start:end])


def parse(text: str) -> List[Resource]:
    """
    Split a multi-document YAML string into resources.

    Empty documents are skipped. A document that is not valid YAML, or whose
    top level is not a mapping, raises ParseError with its 1-based position
    and source text.
    """
    resources: List[Resource] = []
    index = 0
    try:
        for index, doc in enumerate(yaml.load_all(text, Loader=ConfigLoader), start=1):
            if doc is None:
                continue
            if not isinstance(doc, dict):
                raise ParseError(
                    f"document is a {type(doc).__name__}, expected a mapping",
                    document=index,
                    content=repr(doc),
                )
            resources.append(Resource.from_dict(doc))
    except yaml.YAMLError as e:
        raise ParseError(
            f"cannot decode config: {e}",
            document=index + 1,
            content=_document_text(text, e),
        ) from e
    return resources


def role_of(resource: Resource) -> StageRole:
    if not resource.is_pipeline:
        return StageRole.OTHER
    for marker in ROLE_MARKERS:
        if resource.has_marker(marker):
            return MARKER_ROLES[marker]
    return StageRole.OTHER


def classify(resources: Iterable[Resource]) -> Classified:
    """
    Partition resources by role, keeping discovery order inside each bucket.

    Markers are checked jobset > build > post-build. Once a pipeline resource
    is assigned a role every role marker is removed from it, so re-classifying
    the result yields OTHER.
    """
    out = Classified([], [], [], [])
    buckets = {
        StageRole.JOBSET: out.jobsets,
        StageRole.BUILD: out.builds,
        StageRole.POST_BUILD: out.post_builds,
        StageRole.OTHER: out.others,
    }
    for resource in resources:
        role = role_of(resource)
        if role is not StageRole.OTHER:
            resource.strip_markers()
        buckets[role].append(resource)
    return out


def dump(resource: Resource) -> str:
    return yaml.dump(
        resource.to_dict(),
        Dumper=ConfigDumper,
        explicit_start=True,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
    )


def dump_all(resources: Iterable[Resource]) -> str:
    return "".join(dump(r) for r in resources)
