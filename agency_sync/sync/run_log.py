"""Per-run sync logger: prefixes records with the import id and keeps an error tail."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

log = logging.getLogger("agency_sync.sync")


class SyncRunLogger:
    def __init__(self, import_id: uuid.UUID | str, *, limit: int = 100) -> None:
        self.import_id = str(import_id)
        self.prefix = f"[Sync {self.import_id[:8]}]"
        self.limit = limit
        self.errors: list[str] = []

    def info(self, message: str, *args) -> None:
        log.info(f"{self.prefix} {message}", *args)

    def warning(self, message: str, *args) -> None:
        log.warning(f"{self.prefix} {message}", *args)

    def error(self, message: str) -> None:
        """Log and append ``"<timestamp> - <message>"`` to the capped error tail."""
        log.error("%s %s", self.prefix, message)
        stamp = datetime.now(timezone.utc).isoformat(timespec="seconds")
        self.errors.append(f"{stamp} - {message}")
        if len(self.errors) > self.limit:
            del self.errors[: len(self.errors) - self.limit]
