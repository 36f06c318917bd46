# context.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, MutableMapping, Tuple

from .model import ConversionRequest


class _FieldsAdapter(logging.LoggerAdapter):
    """Prefix each message with the request's identifying fields."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        fields = " ".join(f"{k}={v}" for k, v in self.extra.items() if v)
        if fields:
            return f"[{fields}] {msg}", kwargs
        return msg, kwargs


@dataclass
class RequestContext:
    """
    Identifying fields of the request being converted.

    Created once per conversion and handed explicitly to every component that
    logs or calls the Drone API.
    """
    repo_namespace: str
    repo_name: str
    build_ref: str = ""
    repo_branch: str = ""
    fields: Dict[str, str] = field(default_factory=dict)
    logger_name: str = "nixconvert"

    @classmethod
    def from_request(cls, req: ConversionRequest) -> RequestContext:
        return cls(
            repo_namespace=req.repo_namespace,
            repo_name=req.repo_name,
            build_ref=req.build_ref,
            repo_branch=req.repo_branch,
            fields={
                "build_after": req.build_after,
                "build_before": req.build_before,
                "repo_namespace": req.repo_namespace,
                "repo_name": req.repo_name,
            },
        )

    @property
    def slug(self) -> str:
        return f"{self.repo_namespace}/{self.repo_name}"

    @property
    def log(self) -> logging.LoggerAdapter:
        return _FieldsAdapter(logging.getLogger(self.logger_name), dict(self.fields))
