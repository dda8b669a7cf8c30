import csv
import time
import os
from tg_login.core.config import settings

HEADER = ["timestamp", "event_type", "login_id", "outcome", "latency_ms"]


def _ensure_header(path: str) -> None:
    if not os.path.exists(path):
        with open(path, "w", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(HEADER)


def log_event(event_type: str, login_id: str, outcome: str, latency_ms: int = 0):
    path = settings.EVENT_LOG_FILE
    if not path:
        return
    _ensure_header(path)
    with open(path, "a", newline="") as f:
        writer = csv.writer(f)
        writer.writerow([time.time(), event_type, login_id, outcome, latency_ms])
