"""In-memory registry of tools discovered from the worker.

The whole tool set is swapped in one assignment under the lock, so readers see
either the previous set or the new one, never a mix. A failed discovery keeps
the previous set (stale but valid).
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .errors import ToolError
from .logging import core_logger
from .protocol import DISCOVER
from .relevance import ToolMatcher


@dataclass(frozen=True)
class Tool:
    name: str
    description: str = ""
    input_schema: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}), compare=False)

    @classmethod
    def from_wire(cls, raw: Any) -> "Tool":
        if not isinstance(raw, dict):
            raise ValueError(f"tool entry must be an object, got {type(raw).__name__}")
        name = raw.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ValueError("tool entry without a name")
        schema = raw.get("inputSchema", raw.get("input_schema")) or {}
        if not isinstance(schema, dict):
            raise ValueError(f"tool {name}: inputSchema must be an object")
        return cls(name=name, description=str(raw.get("description") or ""), input_schema=MappingProxyType(dict(schema)))

    def properties(self) -> Dict[str, Any]:
        props = self.input_schema.get("properties")
        return dict(props) if isinstance(props, dict) else {}

    def to_payload(self) -> Dict[str, Any]:
        return {"name": self.name, "description": self.description, "inputSchema": dict(self.input_schema)}


def parse_tools(result: Any) -> Tuple[Tool, ...]:
    """Parse a discovery result; raises ValueError on any malformed entry."""
    if not isinstance(result, dict) or not isinstance(result.get("tools"), list):
        raise ValueError("discovery result must be an object with a 'tools' list")
    tools = tuple(Tool.from_wire(t) for t in result["tools"])
    seen = set()
    for t in tools:
        if t.name in seen:
            raise ValueError(f"duplicate tool name: {t.name}")
        seen.add(t.name)
    return tools


class ToolRegistry:
    def __init__(self, correlator=None, matcher: Optional[ToolMatcher] = None, discovery_timeout_s: float = 30.0):
        self.correlator = correlator
        self.matcher = matcher or ToolMatcher()
        self.discovery_timeout_s = discovery_timeout_s
        self._lock = threading.RLock()
        self._tools: Tuple[Tool, ...] = ()
        self.last_refresh_error: Optional[str] = None

    def refresh(self) -> bool:
        if self.correlator is None:
            core_logger.warning("registry refresh skipped: no correlator attached")
            return False
        try:
            result = self.correlator.call(DISCOVER, {}, timeout=self.discovery_timeout_s)
            tools = parse_tools(result)
        except (ToolError, ValueError) as e:
            self.last_refresh_error = str(e)
            core_logger.warning(f"tool discovery failed; keeping {len(self._tools)} known tool(s): {e}")
            return False
        self.replace(tools)
        self.last_refresh_error = None
        core_logger.info(f"Discovered tools (count={len(tools)}): {', '.join(t.name for t in tools)}")
        return True

    def replace(self, tools: Sequence[Tool]):
        new = tuple(tools)
        with self._lock:
            self._tools = new

    def get(self, name: str) -> Optional[Tool]:
        for t in self._tools:
            if t.name == name:
                return t
        return None

    def list(self) -> List[Tool]:
        return list(self._tools)

    def names(self) -> List[str]:
        return [t.name for t in self._tools]

    def find_relevant(self, query: str) -> List[Tool]:
        return self.matcher.rank(self._tools, query)

    def clear(self):
        with self._lock:
            self._tools = ()

    def __len__(self) -> int:
        return len(self._tools)


__all__ = ["ToolRegistry", "Tool", "parse_tools"]
