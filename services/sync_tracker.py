# services/sync_tracker.py
"""In-memory progress for background sync tasks started from the API."""
import threading
import time
import uuid
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional


@dataclass
class _Task:
    id: str
    title: str
    processed: int = 0
    done: bool = False
    ok: Optional[bool] = None
    note: Optional[str] = None
    created_at: float = 0.0
    updated_at: float = 0.0


_TASKS: Dict[str, _Task] = {}
_LOCK = threading.Lock()


def _now() -> float:
    return time.time()


def add_task(title: str) -> str:
    t = _Task(id=str(uuid.uuid4()), title=title, created_at=_now(), updated_at=_now())
    with _LOCK:
        _TASKS[t.id] = t
    return t.id


def step(task_id: Optional[str], processed: int, note: Optional[str] = None) -> None:
    if not task_id:
        return
    with _LOCK:
        if t := _TASKS.get(task_id):
            t.processed, t.note, t.updated_at = processed, note, _now()


def finish_task(task_id: Optional[str], ok: bool, note: Optional[str] = None) -> None:
    if not task_id:
        return
    with _LOCK:
        if t := _TASKS.get(task_id):
            t.done, t.ok, t.note, t.updated_at = True, ok, note, _now()


def get_task(task_id: str) -> Optional[Dict]:
    with _LOCK:
        t = _TASKS.get(task_id)
        return asdict(t) if t else None


def list_tasks() -> List[Dict]:
    with _LOCK:
        return [asdict(t) for t in sorted(_TASKS.values(), key=lambda x: x.updated_at, reverse=True)]


def clear_finished(older_than_seconds: int = 3600) -> None:
    now = _now()
    with _LOCK:
        for k in [k for k, t in _TASKS.items() if t.done and (now - t.updated_at) >= older_than_seconds]:
            _TASKS.pop(k, None)
