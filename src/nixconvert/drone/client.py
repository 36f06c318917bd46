# drone/client.py
from __future__ import annotations

import json
import urllib.error
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen

from .models import Build, LogLine


class APIError(Exception):
    """Raised when Drone API requests fail."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class DroneClient:
    """
    HTTP client for the Drone REST API.

    Holds no per-request state, so a single instance can be shared by
    concurrent conversions.
    """

    def __init__(self, server: str, token: str, timeout: float = 30.0):
        """
        Initialize API client.

        Args:
            server: Base URL of the Drone server (e.g., "https://drone.example.com")
            token: API token sent as Bearer credentials
            timeout: Socket timeout in seconds for each request
        """
        self.server = server.rstrip("/")
        self.token = token
        self.timeout = timeout

    def _repo_path(self, namespace: str, name: str) -> str:
        return f"/api/repos/{quote(namespace, safe='')}/{quote(name, safe='')}"

    def _request(self, method: str, path: str, query: Optional[Dict[str, str]] = None) -> Any:
        """
        Make an HTTP request to the API.

        Args:
            method: HTTP method (GET, POST, etc.)
            path: API path (e.g., "/api/repos/octocat/hello-world/builds")
            query: Optional query parameters

        Returns:
            Parsed JSON response

        Raises:
            APIError: If the request fails or the response is not JSON
        """
        url = self.server + path
        if query:
            url = f"{url}?{urlencode(query)}"

        headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {self.token}",
        }
        # Drone expects an (empty) body on POST
        data = b"" if method == "POST" else None
        req = Request(url, data=data, headers=headers, method=method)

        try:
            with urlopen(req, timeout=self.timeout) as response:
                body = response.read().decode("utf-8")
        except urllib.error.HTTPError as e:
            error_body = e.read().decode("utf-8", errors="replace") if e.fp else ""
            raise APIError(f"{method} {path} failed: {e.code} {e.reason}. {error_body}".strip(), status=e.code) from e
        except urllib.error.URLError as e:
            raise APIError(f"Network error: {e.reason}") from e
        except OSError as e:
            raise APIError(f"Network error: {e}") from e

        if not body:
            return None
        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            raise APIError(f"Invalid JSON response from {method} {path}: {e}") from e

    def create_build(
        self,
        namespace: str,
        name: str,
        commit: str,
        branch: str,
        params: Optional[Dict[str, str]] = None,
    ) -> Build:
        """Trigger a new build; `params` are passed to the build as custom parameters."""
        query: Dict[str, str] = dict(params or {})
        if commit:
            query["commit"] = commit
        if branch:
            query["branch"] = branch
        data = self._request("POST", f"{self._repo_path(namespace, name)}/builds", query)
        return self._decode_build(data)

    def get_build(self, namespace: str, name: str, number: int) -> Build:
        data = self._request("GET", f"{self._repo_path(namespace, name)}/builds/{number}")
        return self._decode_build(data)

    def get_logs(self, namespace: str, name: str, build: int, stage: int, step: int) -> List[LogLine]:
        data = self._request(
            "GET",
            f"{self._repo_path(namespace, name)}/builds/{build}/logs/{stage}/{step}",
        )
        if data is None:
            return []
        if not isinstance(data, list):
            raise APIError(f"Unexpected log response: expected a list, got {type(data).__name__}")
        return [LogLine.from_dict(line) for line in data]

    @staticmethod
    def _decode_build(data: Any) -> Build:
        if not isinstance(data, dict):
            raise APIError(f"Unexpected build response: {data!r}")
        try:
            return Build.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise APIError(f"Invalid build response: {e}") from e
