"""Shared document store: the single source of truth both parties observe."""

from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .errors import DocumentExists, DocumentNotFound, StoreUnavailable

logger = logging.getLogger(__name__)

Snapshot = Optional[Dict[str, Any]]
Listener = Callable[[Snapshot], None]
Mutation = Callable[[Snapshot], Snapshot]


def split_path(path: str) -> Tuple[str, List[str]]:
    """Split ``collection/id/field/...`` into the document key and field parts."""
    parts = [part for part in path.strip("/").split("/") if part]
    if len(parts) < 2:
        raise ValueError(f"Path {path!r} does not address a document")
    return "/".join(parts[:2]), parts[2:]


class DocumentStore(ABC):
    """Eventually consistent single-document key-value store with change feeds.

    Writes use merge semantics, subscribers receive whole-document snapshots
    (``None`` once the document is gone) and each client may arm writes that
    the store applies on its behalf when the client drops off.
    """

    @abstractmethod
    async def create(self, path: str, document: Mapping[str, Any], *, overwrite: bool = False) -> None:
        """Write a whole document; refuse an existing one unless ``overwrite``."""

    @abstractmethod
    async def read(self, path: str) -> Any:
        """Return the value at ``path`` or ``None``."""

    @abstractmethod
    async def update(self, path: str, fields: Mapping[str, Any]) -> None:
        """Merge ``fields`` (``/`` nests, ``None`` deletes) below ``path``."""

    @abstractmethod
    async def set(self, path: str, value: Any) -> None:
        """Replace the value at a field path; ``None`` deletes it."""

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Remove a document or field."""

    @abstractmethod
    async def transaction(self, path: str, mutate: Mutation) -> Snapshot:
        """Atomically replace a document with ``mutate(current)``."""

    @abstractmethod
    def subscribe(self, path: str, listener: Listener) -> Callable[[], None]:
        """Observe a document; returns the unsubscribe handle."""

    @abstractmethod
    async def on_disconnect(self, client_id: str, path: str, value: Any) -> None:
        """Arm ``set(path, value)`` to run when ``client_id`` disconnects."""

    @abstractmethod
    async def cancel_on_disconnect(self, client_id: str) -> None:
        """Disarm every pending disconnect action of ``client_id``."""

    @abstractmethod
    async def disconnect(self, client_id: str) -> None:
        """Signal that ``client_id`` dropped off without cleaning up."""


class InMemoryDocumentStore(DocumentStore):
    """Process-local store with synchronous, in-order change delivery."""

    def __init__(self) -> None:
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)
        self._disconnect_actions: Dict[str, List[Tuple[str, Any]]] = defaultdict(list)
        self.available = True

    # ---- reads & writes ----

    async def create(self, path: str, document: Mapping[str, Any], *, overwrite: bool = False) -> None:
        self._check_available()
        key, fields = split_path(path)
        if fields:
            raise ValueError("create() expects a document path")
        if key in self._documents and not overwrite:
            raise DocumentExists(key)
        self._documents[key] = copy.deepcopy(dict(document))
        self._notify(key)

    async def read(self, path: str) -> Any:
        self._check_available()
        key, fields = split_path(path)
        node: Any = self._documents.get(key)
        for part in fields:
            if not isinstance(node, dict):
                return None
            node = node.get(part)
        return copy.deepcopy(node)

    async def update(self, path: str, fields: Mapping[str, Any]) -> None:
        self._check_available()
        key, prefix = split_path(path)
        document = self._require(key)
        for name, value in fields.items():
            _assign(document, prefix + [part for part in name.split("/") if part], value)
        self._notify(key)

    async def set(self, path: str, value: Any) -> None:
        self._check_available()
        key, parts = split_path(path)
        if not parts:
            if value is None:
                await self.delete(path)
            else:
                await self.create(path, value, overwrite=True)
            return
        _assign(self._require(key), parts, value)
        self._notify(key)

    async def delete(self, path: str) -> None:
        self._check_available()
        key, parts = split_path(path)
        if not parts:
            if self._documents.pop(key, None) is not None:
                self._drop_disconnect_actions(key)
                self._notify(key)
            return
        document = self._documents.get(key)
        if document is None:
            return
        _assign(document, parts, None)
        self._notify(key)

    async def transaction(self, path: str, mutate: Mutation) -> Snapshot:
        self._check_available()
        key, parts = split_path(path)
        if parts:
            raise ValueError("transaction() expects a document path")
        # No await between read and write, so nothing can interleave.
        result = mutate(copy.deepcopy(self._documents.get(key)))
        if result is None:
            if self._documents.pop(key, None) is not None:
                self._drop_disconnect_actions(key)
                self._notify(key)
            return None
        self._documents[key] = copy.deepcopy(dict(result))
        self._notify(key)
        return copy.deepcopy(result)

    # ---- change feed ----

    def subscribe(self, path: str, listener: Listener) -> Callable[[], None]:
        key, parts = split_path(path)
        if parts:
            raise ValueError("subscribe() expects a document path")
        self._listeners[key].append(listener)
        self._deliver(listener, self._documents.get(key))

        def unsubscribe() -> None:
            listeners = self._listeners.get(key, [])
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def listener_count(self, path: str) -> int:
        key, _ = split_path(path)
        return len(self._listeners.get(key, []))

    def disconnect_action_count(self, client_id: str) -> int:
        return len(self._disconnect_actions.get(client_id, []))

    # ---- presence ----

    async def on_disconnect(self, client_id: str, path: str, value: Any) -> None:
        self._check_available()
        split_path(path)
        self._disconnect_actions[client_id].append((path, copy.deepcopy(value)))

    async def cancel_on_disconnect(self, client_id: str) -> None:
        self._disconnect_actions.pop(client_id, None)

    async def disconnect(self, client_id: str) -> None:
        actions = self._disconnect_actions.pop(client_id, [])
        logger.info("[disconnect] client=%s actions=%d", client_id, len(actions))
        for path, value in actions:
            try:
                await self.set(path, value)
            except DocumentNotFound:
                logger.debug("[disconnect-skip] client=%s path=%s gone", client_id, path)

    # ---- helpers ----

    def _check_available(self) -> None:
        if not self.available:
            raise StoreUnavailable("Document store is unavailable")

    def _require(self, key: str) -> Dict[str, Any]:
        document = self._documents.get(key)
        if document is None:
            raise DocumentNotFound(key)
        return document

    def _drop_disconnect_actions(self, key: str) -> None:
        # Hooks die with their document; a reused key starts clean.
        for client_id, actions in list(self._disconnect_actions.items()):
            kept = [(path, value) for path, value in actions if split_path(path)[0] != key]
            if kept:
                self._disconnect_actions[client_id] = kept
            else:
                del self._disconnect_actions[client_id]

    def _notify(self, key: str) -> None:
        document = self._documents.get(key)
        for listener in list(self._listeners.get(key, [])):
            self._deliver(listener, document)

    @staticmethod
    def _deliver(listener: Listener, document: Optional[Dict[str, Any]]) -> None:
        try:
            listener(copy.deepcopy(document))
        except Exception:
            logger.exception("[listener-error] listener=%r", listener)


def _assign(document: Dict[str, Any], parts: List[str], value: Any) -> None:
    node = document
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            if value is None:
                return
            child = {}
            node[part] = child
        node = child
    if value is None:
        node.pop(parts[-1], None)
    else:
        node[parts[-1]] = copy.deepcopy(value)
