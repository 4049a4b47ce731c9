"""
JSON file storage for inventory documents.

Blocking file operations only; the persistence gateway runs them in worker
threads. Each document lives in its own file under the data directory:

    data/inventory/{group_key}_inventory.json
    data/inventory/groups.json
    data/inventory/users.json
"""

import json
import os
import re
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any

from ..logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")

GROUP_REGISTRY_KEY = "groups"
USER_REGISTRY_KEY = "users"
INVENTORY_SUFFIX = "_inventory"


def sanitize_key(raw: str | None, max_length: int = 50) -> str:
    """
    Turn an identifier into a safe storage key.

    Characters outside [A-Za-z0-9._-] become underscores, an empty result
    becomes "default", and the key is capped at max_length characters.
    """
    if not raw:
        return "default"
    key = _UNSAFE_KEY_CHARS.sub("_", raw.strip())
    # Keys made only of dots would resolve to the directory or its parent
    if not key.strip("."):
        return "default"
    return key[:max_length]


class JsonDocumentStore:
    """Reads and writes whole JSON documents keyed by sanitized storage key."""

    def __init__(self, data_dir: str | Path, *, pretty_print: bool = True, max_key_length: int = 50) -> None:
        self.data_dir = Path(data_dir)
        self.pretty_print = pretty_print
        self.max_key_length = max_key_length

    def group_key(self, group_id: str) -> str:
        return sanitize_key(group_id, self.max_key_length) + INVENTORY_SUFFIX

    def path_for(self, document_key: str) -> Path:
        return self.data_dir / f"{document_key}.json"

    def exists(self, document_key: str) -> bool:
        return self.path_for(document_key).is_file()

    def read(self, document_key: str) -> dict[str, Any] | None:
        """
        Read a document.

        Returns None when the file does not exist. Unreadable or malformed
        files raise OSError / ValueError for the caller to log.
        """
        path = self.path_for(document_key)
        if not path.exists():
            return None
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Document root must be an object, got {type(data).__name__}")
        return data

    def write(self, document_key: str, payload: dict[str, Any]) -> None:
        """Write a document atomically: temp file in the same directory, fsync, rename."""
        path = self.path_for(document_key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_fd, tmp_path = tempfile.mkstemp(prefix=f".{document_key}_", suffix=".tmp", dir=str(path.parent))
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2 if self.pretty_print else None, ensure_ascii=False)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, path)
        except OSError as error:
            logger.error("Failed to write document", document_key=document_key, path=str(path), error=str(error))
            raise
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

    def backup(self, document_key: str, now: datetime | None = None) -> Path | None:
        """
        Copy the current file to {key}_backup_{YYYYmmdd_HHMMSS}.json.

        Returns the backup path, or None when there is nothing to back up.
        """
        source = self.path_for(document_key)
        if not source.exists():
            return None
        stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
        target = self.data_dir / f"{document_key}_backup_{stamp}.json"
        shutil.copy2(source, target)
        return target

    def delete(self, document_key: str) -> bool:
        path = self.path_for(document_key)
        if not path.exists():
            return False
        path.unlink()
        return True

    def stat(self, document_key: str) -> os.stat_result | None:
        path = self.path_for(document_key)
        if not path.exists():
            return None
        return path.stat()
