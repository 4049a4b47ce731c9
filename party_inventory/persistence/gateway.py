"""
Persistence gateway for inventory documents.

Every save is a load-merge-write cycle: read the document on disk, replace
only the caller's slice, write the whole document back. Two cycles for the
same document never overlap; they are serialized through a per-document lock
in DocumentMutationGuard, in the order they were scheduled.

Slices are snapshotted when a save is scheduled, not when it runs, so the
bytes written always reflect the in-memory state at the moment the mutation
was committed.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..config.models import StorageConfig
from ..exceptions import ErrorContext, PersistenceError
from ..logging.enhanced_logging_config import get_logger
from ..models.document import DocumentSlice, GroupRegistryDocument, InventoryDocument, UserRegistryDocument
from ..schemas.document_schema import (
    DocumentSchemaValidationError,
    validate_group_registry,
    validate_inventory_document,
    validate_user_registry,
)
from .document_store import GROUP_REGISTRY_KEY, USER_REGISTRY_KEY, JsonDocumentStore
from .mutation_guard import DocumentMutationGuard

logger = get_logger(__name__)

DocT = TypeVar("DocT", bound=BaseModel)

# On-disk key for each slice
_SLICE_KEYS: dict[DocumentSlice, str] = {
    DocumentSlice.ITEMS: "items",
    DocumentSlice.OWNERSHIPS: "itemOwnerships",
    DocumentSlice.CHARACTERS: "characters",
    DocumentSlice.USERS: "users",
}

_READ_ERRORS = (OSError, ValueError, TimeoutError, DocumentSchemaValidationError, PydanticValidationError)
_WRITE_ERRORS = (OSError, ValueError, TimeoutError, DocumentSchemaValidationError)


class PersistenceGateway:
    """
    Loads and saves group inventory documents and the two registries.

    Saves return an asyncio.Task[bool]: True once the document is on disk,
    False when the write failed (the failure is logged, never raised). The
    in-memory state stays authoritative; the next save of the same slice
    writes it again.
    """

    def __init__(
        self,
        config: StorageConfig,
        *,
        store: JsonDocumentStore | None = None,
        guard: DocumentMutationGuard | None = None,
    ) -> None:
        self.config = config
        self.store = store or JsonDocumentStore(
            config.data_dir, pretty_print=config.pretty_print, max_key_length=config.max_key_length
        )
        self.guard = guard or DocumentMutationGuard()
        self._pending: set[asyncio.Task[bool]] = set()
        self._closed = False

    @property
    def pending_saves(self) -> int:
        return sum(1 for task in self._pending if not task.done())

    @property
    def is_closed(self) -> bool:
        return self._closed

    def group_key(self, group_id: str) -> str:
        return self.store.group_key(group_id)

    # ------------------------------------------------------------------
    # Group documents
    # ------------------------------------------------------------------

    async def load_group(self, group_id: str, group_name: str = "") -> InventoryDocument:
        """
        Load a group's inventory document.

        A missing file yields a fresh default document. A corrupt, unreadable
        or schema-invalid file is logged, backed up, and also treated as
        missing; this method does not raise for storage problems.
        """
        default = InventoryDocument(group_id=group_id, group_name=group_name)
        if not self.config.enable_persistence:
            return default

        key = self.group_key(group_id)
        raw = await self._read_validated(key, validate_inventory_document, group_id=group_id)
        if raw is None:
            return default
        try:
            document = InventoryDocument.model_validate(raw)
        except PydanticValidationError as e:
            await self._quarantine(key, e, group_id=group_id)
            return default

        logger.info(
            "Loaded inventory document",
            group_id=group_id,
            version=document.version,
            items=len(document.items),
            ownerships=len(document.item_ownerships),
        )
        return document

    def save_slice(
        self,
        group_id: str,
        slice_name: DocumentSlice,
        records: Sequence[BaseModel],
        *,
        group_name: str | None = None,
    ) -> asyncio.Task[bool]:
        """
        Schedule a load-merge-write of one slice of a group document.

        The records are serialized before this method returns.

        Raises:
            PersistenceError: if the gateway has been shut down
        """
        key = self.group_key(group_id)
        self._ensure_open(key, f"save_{slice_name.value}", group_id)
        snapshot = [record.model_dump(by_alias=True, mode="json") for record in records]
        slice_key = _SLICE_KEYS[slice_name]

        def merge(current: dict[str, Any] | None) -> dict[str, Any]:
            document = current or InventoryDocument(group_id=group_id, group_name=group_name or "").to_storage()
            document[slice_key] = snapshot
            document["groupId"] = group_id
            if group_name is not None:
                document["groupName"] = group_name
            document["version"] = int(document.get("version") or 0) + 1
            document["lastSaved"] = datetime.now(UTC).isoformat()
            validate_inventory_document(document, for_write=True)
            return document

        return self._schedule(key, merge, group_id=group_id, slice_name=slice_name.value)

    async def delete_group(self, group_id: str) -> bool:
        """Back up and delete a group's document; False when no document exists."""
        key = self.group_key(group_id)
        async with self.guard.acquire_async(key):
            try:
                backup_path = await asyncio.to_thread(self.store.backup, key)
                deleted = await asyncio.to_thread(self.store.delete, key)
            except OSError as e:
                logger.error("Failed to delete inventory document", group_id=group_id, error=str(e))
                return False
        if deleted:
            logger.info("Deleted inventory document", group_id=group_id, backup=str(backup_path))
        return deleted

    async def exists(self, group_id: str) -> bool:
        return await asyncio.to_thread(self.store.exists, self.group_key(group_id))

    async def storage_info(self, group_id: str) -> str:
        """One-line description of a group's document on disk."""
        key = self.group_key(group_id)
        try:
            stat = await asyncio.to_thread(self.store.stat, key)
        except OSError as e:
            return f"Error reading info: {e}"
        if stat is None:
            return f"No save file exists for: {group_id}"
        modified = datetime.fromtimestamp(stat.st_mtime)
        return f"Group: {group_id} | Size: {stat.st_size // 1024} KB | Modified: {modified:%m/%d %H:%M}"

    # ------------------------------------------------------------------
    # Registries
    # ------------------------------------------------------------------

    async def load_groups(self) -> GroupRegistryDocument:
        return await self._load_registry(GROUP_REGISTRY_KEY, GroupRegistryDocument, validate_group_registry)

    def save_groups(self, registry: GroupRegistryDocument) -> asyncio.Task[bool]:
        return self._save_registry(GROUP_REGISTRY_KEY, registry, validate_group_registry)

    async def load_users(self) -> UserRegistryDocument:
        return await self._load_registry(USER_REGISTRY_KEY, UserRegistryDocument, validate_user_registry)

    def save_users(self, registry: UserRegistryDocument) -> asyncio.Task[bool]:
        return self._save_registry(USER_REGISTRY_KEY, registry, validate_user_registry)

    async def _load_registry(
        self, key: str, model: type[DocT], validate: Callable[[dict[str, Any]], None]
    ) -> DocT:
        if not self.config.enable_persistence:
            return model()
        raw = await self._read_validated(key, validate)
        if raw is None:
            return model()
        try:
            return model.model_validate(raw)
        except PydanticValidationError as e:
            await self._quarantine(key, e)
            return model()

    def _save_registry(
        self, key: str, registry: BaseModel, validate: Callable[[dict[str, Any]], None]
    ) -> asyncio.Task[bool]:
        self._ensure_open(key, "save_registry")
        snapshot = registry.model_dump(by_alias=True, mode="json")

        def replace(_current: dict[str, Any] | None) -> dict[str, Any]:
            validate(snapshot)
            return snapshot

        return self._schedule(key, replace, read_current=False)

    # ------------------------------------------------------------------
    # Backups and lifecycle
    # ------------------------------------------------------------------

    async def backup(self, document_key: str) -> Path | None:
        """Copy a document to a timestamped backup file before a destructive change."""
        async with self.guard.acquire_async(document_key):
            try:
                path = await asyncio.to_thread(self.store.backup, document_key)
            except OSError as e:
                logger.error("Failed to back up document", document_key=document_key, error=str(e))
                return None
        if path is not None:
            logger.info("Backed up document", document_key=document_key, backup=str(path))
        return path

    async def backup_group(self, group_id: str) -> Path | None:
        return await self.backup(self.group_key(group_id))

    async def flush(self) -> None:
        """Wait for every save scheduled so far, including ones scheduled while waiting."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def shutdown(self) -> None:
        """Refuse new saves and let in-flight saves finish."""
        self._closed = True
        pending = self.pending_saves
        logger.info("Shutting down persistence gateway", pending_saves=pending)
        await self.flush()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_open(self, key: str, operation: str, group_id: str | None = None) -> None:
        if self._closed:
            raise PersistenceError(
                "Persistence gateway is shut down",
                ErrorContext(group_id=group_id, operation=operation),
                document_key=key,
                operation=operation,
                user_friendly="Changes can no longer be saved",
            )

    def _schedule(
        self,
        key: str,
        build: Callable[[dict[str, Any] | None], dict[str, Any]],
        *,
        read_current: bool = True,
        **log_context: Any,
    ) -> asyncio.Task[bool]:
        task = asyncio.create_task(self._run_save(key, build, read_current, log_context), name=f"save:{key}")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _run_save(
        self,
        key: str,
        build: Callable[[dict[str, Any] | None], dict[str, Any]],
        read_current: bool,
        log_context: dict[str, Any],
    ) -> bool:
        if not self.config.enable_persistence:
            return True
        async with self.guard.acquire_async(key):
            try:
                current = await self._read_for_merge(key) if read_current else None
                document = build(current)
                await asyncio.to_thread(self.store.write, key, document)
            except _WRITE_ERRORS as e:
                logger.error(
                    "Failed to save document",
                    document_key=key,
                    error=str(e),
                    error_type=type(e).__name__,
                    **log_context,
                )
                return False
        logger.debug("Saved document", document_key=key, version=document.get("version"), **log_context)
        return True

    async def _read_for_merge(self, key: str) -> dict[str, Any] | None:
        """
        Current on-disk document for a merge, normalized through InventoryDocument.

        Corrupt or invalid files are quarantined and merge as empty, as on load.
        A timed-out read propagates so the save fails instead of clobbering
        the other slices of a document it never saw.
        """
        try:
            raw = await self._bounded(asyncio.to_thread(self.store.read, key))
            if raw is None:
                return None
            validate_inventory_document(raw)
            return InventoryDocument.model_validate(raw).to_storage()
        except TimeoutError:
            raise
        except _READ_ERRORS as e:
            await self._quarantine(key, e)
            return None

    async def _read_validated(
        self, key: str, validate: Callable[[dict[str, Any]], None], **log_context: Any
    ) -> dict[str, Any] | None:
        try:
            async with self.guard.acquire_async(key):
                raw = await self._bounded(asyncio.to_thread(self.store.read, key))
            if raw is not None:
                validate(raw)
            return raw
        except _READ_ERRORS as e:
            await self._quarantine(key, e, **log_context)
            return None

    async def _bounded(self, operation: Awaitable[Any]) -> Any:
        return await asyncio.wait_for(operation, timeout=self.config.io_timeout_seconds)

    async def _quarantine(self, key: str, error: Exception, **log_context: Any) -> None:
        """Log an unusable document and keep a copy of it before it is overwritten."""
        logger.error(
            "Unusable document treated as missing",
            document_key=key,
            error=str(error),
            error_type=type(error).__name__,
            **log_context,
        )
        if isinstance(error, TimeoutError):
            return
        try:
            backup = await asyncio.to_thread(self.store.backup, key)
        except OSError as e:
            logger.warning("Could not back up unusable document", document_key=key, error=str(e))
            return
        if backup is not None:
            logger.info("Backed up unusable document", document_key=key, backup=str(backup))
