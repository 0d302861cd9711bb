"""
In-memory state for the current automation run.
agent_orchestrator.py writes it, spotio_pipeline.py reads the final status and
per-location history. The run is single-threaded, so plain module state suffices.
"""

import time
import os
from typing import Dict, Any, List

_run_state: Dict[str, Any] = {
    "status": "idle",
    "started_at": None,
    "total_locations": 0,
    "current_location": None,
    "last_error": None,
    "completed_at": None,
    "result": None,
    "outcomes": [],
}

SCREENSHOT_DIR = os.getenv("DEBUG_SCREENSHOT_DIR", "/tmp/debug_screenshots")


def _now() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def named_screenshot_path(name: str) -> str:
    """Return path for a descriptively-named screenshot (e.g., 'no_row_rec123')."""
    os.makedirs(SCREENSHOT_DIR, exist_ok=True)
    safe_name = "".join(c if c.isalnum() or c in ('_', '-') else '_' for c in name)
    return os.path.join(SCREENSHOT_DIR, f"{safe_name}.png")


def reset_run():
    _run_state["status"] = "running"
    _run_state["started_at"] = _now()
    _run_state["total_locations"] = 0
    _run_state["current_location"] = None
    _run_state["last_error"] = None
    _run_state["completed_at"] = None
    _run_state["result"] = None
    _run_state["outcomes"] = []


def set_total(total: int):
    _run_state["total_locations"] = total


def start_location(location_id: str, address: str):
    _run_state["current_location"] = {"id": location_id, "address": address}


def record_outcome(location_id: str, address: str, outcome: str):
    _run_state["outcomes"].append({
        "id": location_id,
        "address": address,
        "outcome": outcome,
        "timestamp": _now(),
    })


def complete_run(result: dict):
    _run_state["status"] = "completed" if result.get("success") else "failed"
    _run_state["completed_at"] = _now()
    _run_state["current_location"] = None
    _run_state["result"] = result


def fail_run(error_message: str):
    _run_state["status"] = "failed"
    _run_state["completed_at"] = _now()
    _run_state["last_error"] = error_message


def get_status() -> Dict[str, Any]:
    outcomes = _run_state["outcomes"]
    return {
        "status": _run_state["status"],
        "started_at": _run_state["started_at"],
        "total_locations": _run_state["total_locations"],
        "current_location": _run_state["current_location"],
        "clicked": sum(1 for o in outcomes if o["outcome"] == "clicked"),
        "skipped": sum(1 for o in outcomes if o["outcome"] == "skipped"),
        "last_error": _run_state["last_error"],
        "completed_at": _run_state["completed_at"],
        "result": _run_state["result"],
    }


def get_history() -> List[Dict]:
    return list(_run_state["outcomes"])
