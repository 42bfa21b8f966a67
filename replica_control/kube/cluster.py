from __future__ import annotations

from datetime import datetime, timezone
from time import perf_counter
from typing import Any, Dict, Optional


def check_reachability(version_api: Any, *, request_timeout: Optional[int] = None) -> Dict[str, Any]:
    """Lightweight reachability probe: ask the API server for its version."""

    started = perf_counter()
    try:
        v = version_api.get_code(_request_timeout=request_timeout)
    except Exception as exc:  # noqa: BLE001
        return {
            "ok": False,
            "reachable": False,
            "checkedAt": datetime.now(timezone.utc).isoformat(),
            "ms": int((perf_counter() - started) * 1000),
            "error": str(exc),
        }

    return {
        "ok": True,
        "reachable": True,
        "checkedAt": datetime.now(timezone.utc).isoformat(),
        "ms": int((perf_counter() - started) * 1000),
        "version": {
            "major": getattr(v, "major", None),
            "minor": getattr(v, "minor", None),
            "gitVersion": getattr(v, "git_version", None),
            "platform": getattr(v, "platform", None),
        },
    }
