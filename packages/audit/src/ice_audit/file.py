"""FileSink: one JSON object per line, one file per UTC day.

Files are named ``audit-YYYY-MM-DD.log`` and live in a single directory, so
they can be shipped by any log forwarder without extra configuration.
"""

from __future__ import annotations

import json
import logging
import os
import threading

from ice_audit.base import AuditSink
from ice_audit.models import AuditEvent

logger = logging.getLogger(__name__)

_PREFIX = "audit-"
_SUFFIX = ".log"


class FileSink(AuditSink):
    def __init__(self, directory: str = "./audit"):
        self.directory = directory
        os.makedirs(directory, exist_ok=True)
        self._lock = threading.Lock()

    def _path_for(self, timestamp: str) -> str:
        day = timestamp[:10] or "unknown"
        return os.path.join(self.directory, f"{_PREFIX}{day}{_SUFFIX}")

    def record(self, event: AuditEvent) -> None:
        line = json.dumps(event.to_dict(), sort_keys=True, default=str)
        with self._lock:
            with open(self._path_for(event.timestamp), "a", encoding="utf-8") as fh:
                fh.write(line + "\n")

    def list_events(self, run_id: str | None = None) -> list[AuditEvent]:
        names = sorted(n for n in os.listdir(self.directory) if n.startswith(_PREFIX) and n.endswith(_SUFFIX))
        events = []
        for name in names:
            with open(os.path.join(self.directory, name), encoding="utf-8") as fh:
                for lineno, line in enumerate(fh, 1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        event = AuditEvent.from_dict(json.loads(line))
                    except json.JSONDecodeError:
                        logger.warning("Skipping malformed audit line %s:%d", name, lineno)
                        continue
                    if run_id is None or event.run_id == run_id:
                        events.append(event)
        return events
