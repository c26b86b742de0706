"""
auth/persistence.py -- JSON document persistence for the auth stores.

Each store mirrors its whole collection into one human-readable JSON document
and overwrites that document after every mutation. There is no incremental
append or compaction: write volume is login/logout events, not request-level
traffic, and a single well-formed snapshot is trivial to recover.

Document format:
    {
      "version": 1,
      "users": [ {"username": ..., "password_hash": ..., "role": ...}, ... ]
    }

The records key is chosen per document ("users" / "sessions"). A bare JSON
list -- the unversioned format written by earlier releases -- is still read.

Crash safety: write() serializes to a temp file in the target directory and
os.replace()s it over the document, so a reader (or a restart after a crash)
sees either the old snapshot or the new one, never half of each.

Error model:
  read()  raises PersistenceReadError  -- load() recovers: quarantine + []
  write() raises PersistenceWriteError -- save() recovers: log + False

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from auth.errors import PersistenceReadError, PersistenceWriteError

logger = logging.getLogger("dashgate.persistence")

SCHEMA_VERSION = 1


class JsonDocument:
    """One persisted collection of records.

    Usage:
        doc = JsonDocument(Path("data/users.json"), key="users")
        records = doc.load()      # [] when missing or corrupt
        ok = doc.save(records)    # False when the write failed

    The document does no locking of its own. Stores call save() inside their
    own critical section so "mutate in memory" and "persist" stay atomic.
    """

    def __init__(self, path: Path, key: str) -> None:
        self.path = Path(path)
        self.key = key

    # ------------------------------------------------------------------
    # Strict operations
    # ------------------------------------------------------------------

    def read(self) -> list[dict[str, Any]]:
        """Return the records in the document, or [] if it does not exist."""
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise PersistenceReadError(self.path, f"cannot read file: {exc}") from exc

        try:
            data = json.loads(raw.decode("utf-8"))
        except UnicodeDecodeError as exc:
            raise PersistenceReadError(self.path, f"invalid UTF-8: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise PersistenceReadError(self.path, f"invalid JSON: {exc}") from exc

        if isinstance(data, list):
            records = data
        elif isinstance(data, dict):
            version = data.get("version")
            if version != SCHEMA_VERSION:
                raise PersistenceReadError(self.path, f"unsupported schema version {version!r}")
            records = data.get(self.key)
            if not isinstance(records, list):
                raise PersistenceReadError(self.path, f"missing '{self.key}' list")
        else:
            raise PersistenceReadError(self.path, f"unexpected top-level {type(data).__name__}")

        if not all(isinstance(r, dict) for r in records):
            raise PersistenceReadError(self.path, "records must be JSON objects")
        return records

    def write(self, records: list[dict[str, Any]]) -> None:
        """Replace the document with the given records (temp file + os.replace)."""
        payload = {"version": SCHEMA_VERSION, self.key: records}
        try:
            text = json.dumps(payload, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise PersistenceWriteError(self.path, f"cannot serialize: {exc}") from exc

        tmp: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
            tmp = None
        except OSError as exc:
            raise PersistenceWriteError(self.path, f"cannot write file: {exc}") from exc
        finally:
            if tmp is not None and os.path.exists(tmp):
                os.remove(tmp)

    # ------------------------------------------------------------------
    # Recovering operations (what the stores call)
    # ------------------------------------------------------------------

    def load(self) -> list[dict[str, Any]]:
        """Read the document, falling back to [] on a corrupt file.

        A missing document is the normal first-run state and is not logged as
        a problem. A corrupt one is moved aside (see quarantine()) so the next
        save() starts a fresh document without destroying the evidence.
        """
        if not self.path.exists():
            logger.info("No %s document at %s, starting empty", self.key, self.path)
            return []
        try:
            return self.read()
        except PersistenceReadError as exc:
            moved_to = self.quarantine()
            logger.error(
                "Corrupt %s document (%s); starting empty. Original kept at %s",
                self.key,
                exc.reason,
                moved_to or "<could not move>",
            )
            return []

    def save(self, records: list[dict[str, Any]]) -> bool:
        """Write the document; log and return False instead of raising."""
        try:
            self.write(records)
        except PersistenceWriteError as exc:
            logger.error("Failed to save %s document: %s", self.key, exc)
            return False
        logger.debug("Saved %d %s to %s", len(records), self.key, self.path)
        return True

    def quarantine(self) -> Path | None:
        """Rename the current document to <name>.corrupt-<UTC timestamp>[-N].

        Never overwrites an earlier quarantined copy: a numeric suffix is
        added when the microsecond timestamp is already taken.
        """
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        target = self.path.with_name(f"{self.path.name}.corrupt-{stamp}")
        n = 1
        while target.exists():
            target = self.path.with_name(f"{self.path.name}.corrupt-{stamp}-{n}")
            n += 1
        try:
            os.replace(self.path, target)
        except OSError as exc:
            logger.warning("Could not move corrupt document %s aside: %s", self.path, exc)
            return None
        return target
