"""Service configuration loading and normalization.

Configuration comes from an optional YAML file (path argument or the
``TAZATOOLS_CONFIG`` env var) merged over built-in defaults. Credentials are
read from ``TAZAPAY_API_KEY`` / ``TAZAPAY_API_SECRET`` (env wins over the
file) and are only ever handed to the worker through its environment.

Example::

    worker:
      command: docker
      args: [run, --rm, -i, -e, TAZAPAY_API_KEY, -e, TAZAPAY_API_SECRET,
             tazapay/tazapay-mcp-server:latest]
      handshake: true
    timeouts: {discovery_s: 30, invoke_s: 60}
    docs: {base_url: "https://docs-assistant.example.com"}
    relevance:
      intents:
        - {pattern: "*create*payment*", phrases: ["send money"]}
"""
from __future__ import annotations

import copy
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .errors import ConfigError
from .process_channel import LaunchSpec
from .protocol import API_KEY_ENV, API_SECRET_ENV

CONFIG_ENV = "TAZATOOLS_CONFIG"
DOCKER_IMAGE = "tazapay/tazapay-mcp-server:latest"
DEFAULT_DOCS_URL = "https://aaba8e7a84a1.ngrok-free.app"

DEFAULTS: Dict[str, Any] = {
    "worker": {
        "name": "tazapay-mcp",
        "command": "docker",
        "args": ["run", "--rm", "-i", "-e", API_KEY_ENV, "-e", API_SECRET_ENV, DOCKER_IMAGE],
        "env": {},
        "cwd": None,
        "handshake": True,
    },
    "credentials": {"api_key": None, "api_secret": None},
    "timeouts": {"discovery_s": 30.0, "invoke_s": 60.0, "handshake_s": 30.0, "stop_s": 5.0},
    "docs": {"base_url": DEFAULT_DOCS_URL, "timeout_s": 30.0},
    "relevance": {"intents": None},
}

TIMEOUT_KEYS = ("discovery_s", "invoke_s", "handshake_s", "stop_s")


@dataclass
class ServiceConfig:
    worker_name: str = "tazapay-mcp"
    command: str = "docker"
    args: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    cwd: Optional[str] = None
    handshake: bool = True
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    discovery_timeout_s: float = 30.0
    invoke_timeout_s: float = 60.0
    handshake_timeout_s: float = 30.0
    stop_timeout_s: float = 5.0
    docs_base_url: str = DEFAULT_DOCS_URL
    docs_timeout_s: float = 30.0
    intents: Optional[List[Dict[str, Any]]] = None
    source: Optional[str] = None

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key and self.api_secret)

    def launch_spec(self) -> LaunchSpec:
        env = dict(self.env)
        # secrets go to the environment only, never to argv
        if self.api_key:
            env[API_KEY_ENV] = self.api_key
        if self.api_secret:
            env[API_SECRET_ENV] = self.api_secret
        return LaunchSpec(command=self.command, args=list(self.args), env=env, cwd=self.cwd)


def sandbox_launch_spec(config: Optional[ServiceConfig] = None) -> LaunchSpec:
    """Launch spec for the bundled offline sandbox worker."""
    spec = LaunchSpec(command=sys.executable, args=["-m", "tazatools.core.sandbox_worker"])
    if config is not None:
        spec.env.update(config.launch_spec().env)
    return spec


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return data


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out


def _as_float(section: str, key: str, value: Any) -> float:
    try:
        f = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{section}.{key} must be a number, got {value!r}") from e
    if f <= 0:
        raise ConfigError(f"{section}.{key} must be positive, got {f}")
    return f


def _validate(data: Dict[str, Any]):
    unknown = set(data) - set(DEFAULTS)
    if unknown:
        raise ConfigError(f"Unknown config section(s): {', '.join(sorted(unknown))}")
    worker = data["worker"]
    if not isinstance(worker.get("command"), str) or not worker["command"].strip():
        raise ConfigError("worker.command must be a non-empty string")
    if not isinstance(worker.get("args"), list):
        raise ConfigError("worker.args must be a list")
    if not isinstance(worker.get("env") or {}, dict):
        raise ConfigError("worker.env must be a mapping")
    for key in (API_KEY_ENV, API_SECRET_ENV):
        if key in (worker.get("env") or {}):
            raise ConfigError(f"worker.env must not carry {key}; use credentials or the environment")
    intents = data["relevance"].get("intents")
    if intents is not None:
        if not isinstance(intents, list) or not all(isinstance(i, dict) and i.get("pattern") for i in intents):
            raise ConfigError("relevance.intents must be a list of {pattern, phrases} mappings")


def build_config(data: Optional[Dict[str, Any]] = None, source: Optional[str] = None) -> ServiceConfig:
    merged = _merge(DEFAULTS, data or {})
    _validate(merged)
    worker, creds, timeouts, docs = merged["worker"], merged["credentials"], merged["timeouts"], merged["docs"]
    t = {k: _as_float("timeouts", k, timeouts.get(k)) for k in TIMEOUT_KEYS}
    return ServiceConfig(
        worker_name=str(worker.get("name") or "tazapay-mcp"),
        command=worker["command"],
        args=[str(a) for a in worker["args"]],
        env={str(k): str(v) for k, v in (worker.get("env") or {}).items()},
        cwd=worker.get("cwd"),
        handshake=bool(worker.get("handshake", True)),
        api_key=os.getenv(API_KEY_ENV) or creds.get("api_key"),
        api_secret=os.getenv(API_SECRET_ENV) or creds.get("api_secret"),
        discovery_timeout_s=t["discovery_s"],
        invoke_timeout_s=t["invoke_s"],
        handshake_timeout_s=t["handshake_s"],
        stop_timeout_s=t["stop_s"],
        docs_base_url=str(docs.get("base_url") or DEFAULT_DOCS_URL).rstrip("/"),
        docs_timeout_s=_as_float("docs", "timeout_s", docs.get("timeout_s")),
        intents=merged["relevance"].get("intents"),
        source=source,
    )


def load_config(path: Optional[str] = None) -> ServiceConfig:
    path = path or os.getenv(CONFIG_ENV)
    if not path:
        return build_config()
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config file not found: {p}")
    return build_config(_read_yaml(p), source=str(p))


__all__ = [
    "ServiceConfig",
    "load_config",
    "build_config",
    "sandbox_launch_spec",
    "ConfigError",
    "CONFIG_ENV",
]
