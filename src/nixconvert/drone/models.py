# drone/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List


class BuildStatus:
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILURE = "failure"

    ACTIVE = (PENDING, RUNNING)


@dataclass
class Step:
    """A step inside a Drone stage."""
    number: int
    name: str = ""
    status: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Step:
        return cls(
            number=int(data["number"]),
            name=data.get("name", ""),
            status=data.get("status", ""),
        )


@dataclass
class Stage:
    """A stage (one pipeline) of a Drone build, with its steps in server order."""
    number: int
    name: str = ""
    status: str = ""
    steps: List[Step] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Stage:
        return cls(
            number=int(data["number"]),
            name=data.get("name", ""),
            status=data.get("status", ""),
            steps=[Step.from_dict(s) for s in data.get("steps") or []],
        )


@dataclass
class Build:
    """Represents a build as returned by the Drone API."""
    id: int
    number: int
    status: str
    stages: List[Stage] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Build:
        """Create Build from an API response dictionary."""
        return cls(
            id=int(data.get("id", 0)),
            number=int(data["number"]),
            status=data.get("status", ""),
            stages=[Stage.from_dict(s) for s in data.get("stages") or []],
        )

    @property
    def active(self) -> bool:
        return self.status in BuildStatus.ACTIVE

    @property
    def succeeded(self) -> bool:
        return self.status == BuildStatus.SUCCESS


@dataclass
class LogLine:
    """One line of step output."""
    number: int
    message: str
    timestamp: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> LogLine:
        return cls(
            number=int(data.get("pos", 0)),
            message=data.get("out", ""),
            timestamp=int(data.get("time", 0)),
        )

    @property
    def text(self) -> str:
        """Message without its line terminator (runners usually keep the newline)."""
        return self.message.rstrip("\r\n")
