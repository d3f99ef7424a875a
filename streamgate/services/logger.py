"""Service logging with an in-memory ring buffer and optional JSONL persistence."""

import json
import threading
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from streamgate.config import settings


# Thread-safe log storage
_log_lock = threading.Lock()
_log_buffer: deque = deque(maxlen=2000)  # Keep last 2000 entries in memory
_log_sequence: int = 0  # Global sequence number for ordering


def _get_log_file() -> Optional[Path]:
    """Get the log file path, creating its directory if needed."""
    if not settings.LOG_FILE:
        return None
    log_file = Path(settings.LOG_FILE)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    return log_file


def log(level: str, message: str, category: str = "general", details: Optional[dict] = None):
    """
    Log a message with optional details.

    Args:
        level: Log level (INFO, WARN, ERROR, DEBUG, SUCCESS)
        message: Log message
        category: Category (general, api, resolver, crawler, relay)
        details: Optional additional details dict
    """
    global _log_sequence

    with _log_lock:
        _log_sequence += 1
        seq = _log_sequence

    entry = {
        "seq": seq,
        "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
        "level": level,
        "category": category,
        "message": message,
    }
    if details:
        entry["details"] = details

    with _log_lock:
        _log_buffer.append(entry)

        log_file = _get_log_file()
        if log_file is not None:
            try:
                with open(log_file, "a") as f:
                    f.write(json.dumps(entry, default=str) + "\n")
            except OSError:
                # Logging must never fail a request
                pass

    # Also print to stdout for the process supervisor
    print(f"[{entry['timestamp']}] [{level}] [{category}] {message}", flush=True)


def get_logs(limit: int = 100, category: Optional[str] = None, level: Optional[str] = None, since_seq: int = 0) -> list:
    """
    Get recent logs from memory buffer.

    Args:
        limit: Maximum number of logs to return
        category: Filter by category
        level: Filter by level
        since_seq: Only return logs with sequence > since_seq
    """
    with _log_lock:
        logs = list(_log_buffer)

    if since_seq > 0:
        logs = [l for l in logs if l.get("seq", 0) > since_seq]
    if category:
        logs = [l for l in logs if l.get("category") == category]
    if level:
        logs = [l for l in logs if l.get("level") == level]

    return logs[-limit:]


def get_latest_sequence() -> int:
    """Get the current log sequence number."""
    return _log_sequence


def clear_logs():
    """Clear all logs from memory."""
    with _log_lock:
        _log_buffer.clear()
    log("INFO", "Logs cleared", "general")


def get_log_stats() -> dict:
    """Get log statistics."""
    with _log_lock:
        logs = list(_log_buffer)

    stats = {
        "total": len(logs),
        "by_level": {},
        "by_category": {},
    }

    for entry in logs:
        level = entry.get("level", "UNKNOWN")
        category = entry.get("category", "general")
        stats["by_level"][level] = stats["by_level"].get(level, 0) + 1
        stats["by_category"][category] = stats["by_category"].get(category, 0) + 1

    return stats


# Convenience functions
def info(message: str, category: str = "general", details: Optional[dict] = None):
    log("INFO", message, category, details)

def warn(message: str, category: str = "general", details: Optional[dict] = None):
    log("WARN", message, category, details)

def error(message: str, category: str = "general", details: Optional[dict] = None):
    log("ERROR", message, category, details)

def debug(message: str, category: str = "general", details: Optional[dict] = None):
    log("DEBUG", message, category, details)

def success(message: str, category: str = "general", details: Optional[dict] = None):
    log("SUCCESS", message, category, details)
