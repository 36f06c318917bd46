# settings.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

DEFAULT_BIND = ":3000"


class SettingsError(Exception):
    """Raised when the process configuration is missing or invalid."""


def _flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _number(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise SettingsError(f"{key} must be a number, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    secret: str
    server: str
    token: str
    bind: str = DEFAULT_BIND
    debug: bool = False
    poll_interval: float = 0.5
    eval_timeout: Optional[float] = 3600.0
    http_timeout: float = 30.0

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> Settings:
        env = os.environ if env is None else env

        secret = env.get("DRONE_SECRET", "")
        if not secret:
            raise SettingsError("missing secret key (DRONE_SECRET)")
        token = env.get("DRONE_TOKEN", "")
        if not token:
            raise SettingsError("missing token key (DRONE_TOKEN)")
        server = env.get("DRONE_SERVER", "")
        if not server:
            raise SettingsError("missing server address (DRONE_SERVER)")

        eval_timeout: Optional[float] = _number(env, "NIX_EVAL_TIMEOUT", 3600.0)
        if eval_timeout is not None and eval_timeout <= 0:
            eval_timeout = None  # 0 disables the bound

        return cls(
            secret=secret,
            server=server,
            token=token,
            bind=env.get("DRONE_BIND", "") or DEFAULT_BIND,
            debug=_flag(env.get("DRONE_DEBUG", "")),
            poll_interval=_number(env, "NIX_EVAL_POLL_INTERVAL", 0.5),
            eval_timeout=eval_timeout,
            http_timeout=_number(env, "DRONE_HTTP_TIMEOUT", 30.0),
        )

    def host_port(self) -> Tuple[str, int]:
        """Split DRONE_BIND (":3000", "127.0.0.1:8080") into host and port."""
        host, sep, port = self.bind.rpartition(":")
        if not sep:
            host, port = "", self.bind
        try:
            port_num = int(port)
        except ValueError:
            raise SettingsError(f"invalid bind address {self.bind!r}")
        return host or "0.0.0.0", port_num
