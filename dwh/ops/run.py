from __future__ import annotations

import json
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

import yaml

from dwh.utils.paths import OUTPUTS_DIR


def _utc_now_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")


@contextmanager
def run_context(phase: str, runs_dir: Optional[Path] = None, config: Optional[Dict[str, Any]] = None) -> Iterator[Dict[str, Any]]:
    """Record one pipeline run under ``<runs_dir>/<run_id>``.

    Yields a dict with ``run_id``, ``run_dir`` and a ``log(event)`` callable that
    appends JSON lines to the run's ``logs.jsonl``.  Start, finish and error rows
    are appended to ``runs.jsonl`` in ``runs_dir``; exceptions are re-raised.
    """
    runs_dir = Path(runs_dir) if runs_dir is not None else OUTPUTS_DIR / "runs"
    run_id = _utc_now_id()
    run_dir = runs_dir / run_id
    run_dir.mkdir(parents=True, exist_ok=True)
    logs_path = run_dir / "logs.jsonl"
    registry_path = runs_dir / "runs.jsonl"

    def log(event: Dict[str, object]) -> None:
        payload = {"ts": datetime.now(timezone.utc).isoformat(), "phase": phase, "run_id": run_id}
        payload.update(event)
        with open(logs_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(payload, default=str) + "\n")

    def append_registry(entry: Dict[str, object]) -> None:
        entry_with_ids = {"run_id": run_id, **entry}
        with open(registry_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry_with_ids, default=str) + "\n")

    t0 = time.perf_counter()
    start_ts = datetime.now(timezone.utc).isoformat()
    log({"level": "INFO", "event": "start"})
    append_registry({"started_at": start_ts, "status": "running", "phase": phase, "artifacts_path": str(run_dir)})
    if config is not None:
        with open(run_dir / "config_resolved.yaml", "w", encoding="utf-8") as f:
            yaml.safe_dump(config, f, sort_keys=False)

    try:
        yield {"run_id": run_id, "run_dir": str(run_dir), "log": log}
    except Exception as e:
        dt_ms = int((time.perf_counter() - t0) * 1000)
        log({"level": "ERROR", "event": "exception", "err": str(e), "duration_ms": dt_ms})
        append_registry(
            {
                "started_at": start_ts,
                "finished_at": datetime.now(timezone.utc).isoformat(),
                "status": "error",
                "phase": phase,
                "artifacts_path": str(run_dir),
                "error": str(e),
            }
        )
        raise
    dt_ms = int((time.perf_counter() - t0) * 1000)
    log({"level": "INFO", "event": "finish", "duration_ms": dt_ms})
    append_registry(
        {
            "started_at": start_ts,
            "finished_at": datetime.now(timezone.utc).isoformat(),
            "status": "finished",
            "phase": phase,
            "artifacts_path": str(run_dir),
        }
    )
