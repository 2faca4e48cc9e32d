from __future__ import annotations

import os
from importlib import import_module

from pydantic import BaseModel


class Settings(BaseModel):
    # Defaults are static. Use load_settings(env=...) to read from an env snapshot.

    # Remote helper spawned for http:/https: URIs as `<remote_helper> <remote_name> <uri>`.
    remote_helper: str = "git-remote-https"
    remote_name: str = "origin"

    log_level: str = "INFO"

    # Observability
    # - log_format: "text" (default) or "json". When json, bundleuri logs emit a single JSON
    #   object per line, suitable for log aggregation.
    log_format: str = "text"

    # Optional metrics sink module (exposes METRICS: MetricsSink)
    metrics_module: str | None = None

    # Used by the bundled bundleuri-remote-https helper only.
    http_timeout: float = 30.0

    @classmethod
    def from_env(cls, env: dict[str, str], overrides: dict | None = None) -> "Settings":
        """Build Settings from an explicit env snapshot (does not read os.environ)."""
        def g(key: str, default: str | None = None) -> str | None:
            return env.get(key, default)  # type: ignore[return-value]

        data = {
            "remote_helper": g("BUNDLEURI_REMOTE_HELPER", "git-remote-https"),
            "remote_name": g("BUNDLEURI_REMOTE_NAME", "origin"),
            "log_level": g("BUNDLEURI_LOG_LEVEL", "INFO"),
            "log_format": g("BUNDLEURI_LOG_FORMAT", "text"),
            "metrics_module": g("BUNDLEURI_METRICS_MODULE") or None,
            "http_timeout": float(g("BUNDLEURI_HTTP_TIMEOUT", "30") or 30),
        }
        if overrides:
            data.update(overrides)
        return cls(**data)


def load_settings(overrides: dict | None = None, *, env: dict[str, str] | None = None) -> Settings:
    """Load settings from (1) env snapshot, (2) optional settings module, (3) explicit overrides.

    If env is not provided, we build a snapshot from os.environ.
    """
    env2 = {k: str(v) for k, v in os.environ.items()} if env is None else env
    s = Settings.from_env(env2)
    mod = env2.get("BUNDLEURI_SETTINGS_MODULE")
    if mod:
        m = import_module(mod)
        data = getattr(m, "SETTINGS", {})
        if not isinstance(data, dict):
            raise TypeError("BUNDLEURI_SETTINGS_MODULE must expose SETTINGS: dict")
        s = s.model_copy(update=data)
    if overrides:
        s = s.model_copy(update=overrides)
    return s
