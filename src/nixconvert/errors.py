# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class ConversionError(Exception):
    """
    Structured conversion failure with enough context for:
      - the HTTP error body returned to the CI server
      - clean CLI output
      - debugging without full tracebacks
    """
    kind: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


class ParseError(ConversionError):
    """The configuration text is not valid multi-document YAML."""

    def __init__(self, message: str, document: Optional[int] = None, content: Optional[str] = None):
        details: Dict[str, Any] = {}
        if document is not None:
            details["document"] = document
        if content is not None:
            details["content"] = content
        super().__init__(kind="ParseError", message=message, details=details)
        self.document = document
        self.content = content


class EvalError(ConversionError):
    """The evaluation build could not be created, queried, or did not succeed."""

    def __init__(self, message: str, build: Optional[int] = None, status: Optional[str] = None):
        details: Dict[str, Any] = {}
        if build is not None:
            details["build"] = build
        if status is not None:
            details["status"] = status
        super().__init__(kind="EvalError", message=message, details=details)
        self.build = build
        self.status = status


class ExtractError(ConversionError):
    """Logs of an evaluation step could not be fetched or decoded."""

    def __init__(self, message: str, build: int, stage: int, step: int):
        super().__init__(
            kind="ExtractError",
            message=message,
            details={"build": build, "stage": stage, "step": step},
        )
        self.build = build
        self.stage = stage
        self.step = step


class RenderError(ConversionError):
    """A resource could not be serialized back to YAML."""

    def __init__(self, message: str, resource: str):
        super().__init__(kind="RenderError", message=message, details={"resource": resource})
        self.resource = resource
