"""Core components of the tool invocation service.

Modules:
  framing: Newline-delimited JSON framing of the worker output stream.
  protocol: JSON-RPC message builders and response helpers.
  process_channel: Own one worker subprocess; publish frames and exit events.
  correlator: Match responses to pending calls by id, with deadlines.
  registry: Discovered tool set, swapped atomically on refresh.
  relevance: Three-tier matching of free text against tools.
  extractor: Regex based argument extraction per tool family.
  config_loader: YAML config + credential resolution.
  service: ToolInvocationService tying the above together.
  sandbox_worker: Offline worker answering the same protocol with canned data.
"""

from .registry import ToolRegistry  # noqa: F401
