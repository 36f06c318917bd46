from .client import APIError, DroneClient
from .models import Build, BuildStatus, LogLine, Stage, Step

__all__ = ["APIError", "DroneClient", "Build", "BuildStatus", "LogLine", "Stage", "Step"]
