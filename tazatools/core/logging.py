"""Lightweight logging setup for core framework.

Users can override log level with TAZATOOLS_LOG_LEVEL env var.

Also includes helpers to safely summarize potentially large JSON payloads
(tool results, discovery responses) and to mask credentials before an
environment map reaches the logs.
"""
from __future__ import annotations
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping

SECRET_MARKERS = ("KEY", "SECRET", "TOKEN", "PASSWORD")


def _summarize_sequence(seq: Any, max_items: int) -> Dict[str, Any]:
    out: Dict[str, Any] = {"type": type(seq).__name__, "len": len(seq)}
    prev_vals = []
    for x in list(seq)[:max_items]:
        s = str(x)
        if len(s) > 120:
            s = s[:117] + "..."
        prev_vals.append(s)
    out["preview"] = prev_vals
    return out


def summarize_for_log(obj: Any, *, max_items: int = 8) -> Any:
    """Return a compact, JSON-serializable summary suitable for logging.

    - Dict: size, keys (truncated) and value types (not full values)
    - List/Tuple/Set: length and a short preview of values
    - str: length and truncated preview
    - Other scalars: returned directly
    """
    if obj is None or isinstance(obj, (bool, int, float)):
        return obj
    if isinstance(obj, str):
        return {"type": "str", "len": len(obj), "preview": (obj if len(obj) <= 200 else obj[:197] + "...")}
    if isinstance(obj, (bytes, bytearray)):
        return {"type": type(obj).__name__, "len": len(obj)}
    if isinstance(obj, dict):
        keys = list(obj.keys())[:max_items]
        return {
            "type": "dict",
            "len": len(obj),
            "keys": [str(k) for k in keys],
            "value_types": {str(k): type(obj[k]).__name__ for k in keys},
        }
    if isinstance(obj, (list, tuple, set)):
        return _summarize_sequence(obj, max_items=max_items)
    return {"type": type(obj).__name__}


def redact_env(env: Mapping[str, str], secret_keys: Iterable[str] = ()) -> Dict[str, str]:
    """Copy of ``env`` with credential-looking values masked."""
    explicit = set(secret_keys)
    out: Dict[str, str] = {}
    for k, v in env.items():
        if k in explicit or any(m in k.upper() for m in SECRET_MARKERS):
            out[k] = (v[:2] + "***") if v else ""
        else:
            out[k] = v
    return out


LOG_LEVEL = os.getenv("TAZATOOLS_LOG_LEVEL", "INFO").upper()


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
LOG_FILE_NAME = "tazatools.log"


def _attach_file_handler(logger: logging.Logger, log_dir: str):
    p = Path(log_dir)
    file_path = (p / LOG_FILE_NAME).resolve()
    for h in logger.handlers:
        if isinstance(h, logging.FileHandler) and Path(h.baseFilename) == file_path:
            return
    try:
        p.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(file_path, encoding="utf-8")
    except OSError as e:
        logger.warning(f"file logging disabled: {e}")
        return
    fh.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(fh)


def get_logger(name: str = "tazatools") -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(stream_handler)
        # Optional file handler if TAZATOOLS_LOG_DIR is set
        log_dir = os.getenv("TAZATOOLS_LOG_DIR")
        if log_dir:
            _attach_file_handler(logger, log_dir)
        logger.setLevel(os.getenv("TAZATOOLS_LOG_LEVEL", LOG_LEVEL).upper())
        logger.propagate = False
    return logger


def configure_file_logging(log_dir: str):
    """Attach the file handler to every tazatools logger created so far."""
    for name in list(logging.Logger.manager.loggerDict):
        if name == "tazatools" or name.startswith("tazatools."):
            _attach_file_handler(logging.getLogger(name), log_dir)


core_logger = get_logger("tazatools.core")
worker_logger = get_logger("tazatools.worker")

__all__ = ["get_logger", "configure_file_logging", "core_logger", "worker_logger", "summarize_for_log", "redact_env"]
