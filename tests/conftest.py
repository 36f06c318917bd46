"""Shared fixtures: an in-memory stand-in for the Drone API."""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple, Union

import pytest

from nixconvert.context import RequestContext
from nixconvert.drone import APIError, Build, LogLine, Stage, Step


class FakeDroneClient:
    """Scripted Drone API: status sequence for polls, log lines per (stage, step)."""

    def __init__(self) -> None:
        self.build_number = 42
        self.statuses: List[str] = ["success"]
        self.stages: List[Stage] = [Stage(number=1, steps=[Step(number=1)])]
        self.logs: Dict[Tuple[int, int], Union[List[str], Exception]] = {}
        self.create_error: Optional[Exception] = None
        self.created: List[dict] = []
        self.polls = 0
        self.log_requests: List[Tuple[int, int]] = []

    def create_build(self, namespace, name, commit, branch, params=None) -> Build:
        if self.create_error is not None:
            raise self.create_error
        self.created.append({
            "namespace": namespace,
            "name": name,
            "commit": commit,
            "branch": branch,
            "params": dict(params or {}),
        })
        return Build(id=1000 + self.build_number, number=self.build_number, status="pending")

    def get_build(self, namespace, name, number) -> Build:
        status = self.statuses[min(self.polls, len(self.statuses) - 1)]
        self.polls += 1
        if isinstance(status, Exception):
            raise status
        stages = self.stages if status == "success" else []
        return Build(id=1000 + number, number=number, status=status, stages=stages)

    def get_logs(self, namespace, name, build, stage, step) -> List[LogLine]:
        self.log_requests.append((stage, step))
        lines = self.logs.get((stage, step), [])
        if isinstance(lines, Exception):
            raise lines
        return [LogLine(number=i, message=m) for i, m in enumerate(lines)]


@pytest.fixture
def drone() -> FakeDroneClient:
    return FakeDroneClient()


@pytest.fixture
def ctx() -> RequestContext:
    return RequestContext(
        repo_namespace="Mic92",
        repo_name="drone-convert-nix",
        build_ref="refs/heads/main",
        repo_branch="main",
    )


@pytest.fixture
def api_error() -> APIError:
    return APIError("GET /api/repos failed: 500 Internal Server Error", status=500)
