"""
Edit buffers behind the admin editor screens.

An editor loads a collection (or one page document) into local memory,
takes a serialized snapshot, lets the caller edit freely and reports
dirtiness by comparing the current serialization with the snapshot.
Nothing reaches the store until commit().

One editor instance belongs to one session; editors are never shared.
"""

from __future__ import annotations

import copy
import json
import logging
import re
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field, replace
from typing import (
    Any,
    Callable,
    Dict,
    Iterator,
    List,
    Mapping,
    Optional,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from cms.content import fetch_page_content, save_page_content
from cms.errors import CmsError, InvalidFieldError, NotFoundError, StoreUnavailableError
from cms.schemas import ISO_DATE
from cms.slots import SlotList, move_item
from cms.store import ContentStore
from shared.json_utils import canonical_json
from shared.models import (
    ENTITY_SPECS,
    EntitySpec,
    PageContent,
    PageKey,
    editable_fields,
    has_field,
)

logger = logging.getLogger(__name__)


_ISO_DATE = re.compile(ISO_DATE)


def check_field_value(entity_type: type, name: str, value: Any) -> None:
    """
    Rejects a patched value that does not fit the field's declared type.

    Optional fields accept None, list fields take a list of strings and
    `date` fields take a YYYY-MM-DD string or "".
    """
    hint = get_type_hints(entity_type)[name]
    if get_origin(hint) is Union and type(None) in get_args(hint):
        if value is None:
            return
        hint = next(arg for arg in get_args(hint) if arg is not type(None))
    if get_origin(hint) is list:
        ok = isinstance(value, list) and all(isinstance(v, str) for v in value)
        expected = "a list of strings"
    elif hint is bool:
        ok = isinstance(value, bool)
        expected = "true or false"
    elif hint is int:
        ok = isinstance(value, int) and not isinstance(value, bool)
        expected = "a whole number"
    elif hint is str:
        ok = isinstance(value, str)
        expected = "a string"
        if ok and name == "date" and value and not _ISO_DATE.match(value):
            ok, expected = False, "a YYYY-MM-DD date"
    else:
        ok, expected = True, ""
    if not ok:
        raise InvalidFieldError(f"{name} must be {expected}", name)


@dataclass
class CommitResult:
    written: int
    deleted: List[str] = field(default_factory=list)
    failed_deletes: List[str] = field(default_factory=list)


class _SnapshotBuffer:
    """Snapshot/dirty bookkeeping shared by the editors."""

    def __init__(self):
        self._lock = threading.RLock()
        self._snapshot = self._serialize(self._current())
        self.closed = False
        self.loaded = False

    def _current(self) -> Any:
        raise NotImplementedError

    @staticmethod
    def _serialize(value: Any) -> str:
        if isinstance(value, list):
            return canonical_json([asdict(item) for item in value])
        return canonical_json(asdict(value))

    @property
    def snapshot(self) -> str:
        return self._snapshot

    def is_dirty(self) -> bool:
        with self._lock:
            return self._serialize(self._current()) != self._snapshot

    def close(self) -> None:
        """Marks the editor closed; results of loads still in flight are dropped."""
        self.closed = True


class OrderedCollectionEditor(_SnapshotBuffer):
    """
    Local edit buffer for one ordered collection (events, testimonials,
    supporters, staff members).

    Commit writes the whole sequence in one atomic batch with `order`
    reassigned to 0..n-1, then deletes removed items one by one on a
    best-effort basis.
    """

    def __init__(
        self,
        store: ContentStore,
        spec: EntitySpec,
        max_slots: Optional[int] = None,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        self.store = store
        self.spec = spec
        self.max_slots = max_slots
        self._id_factory = id_factory
        self._items: List[Any] = []
        self._synced_ids: set[str] = set()
        self.pending_deletes: set[str] = set()
        self.selection: Optional[str] = None
        super().__init__()

    def _current(self) -> List[Any]:
        return self._items

    @property
    def collection(self) -> str:
        return self.spec.collection

    @property
    def items(self) -> List[Any]:
        with self._lock:
            return copy.deepcopy(self._items)

    def load(self) -> bool:
        """
        Fetches the collection in its natural sort order and resets the buffer.

        Returns False if the editor was closed while the fetch was in flight,
        in which case the result is discarded.
        """
        records = self.store.list(
            self.spec.collection,
            order_by=self.spec.sort_field,
            descending=self.spec.sort_descending,
        )
        if self.closed:
            logger.debug("Discarding load of %s for closed editor", self.collection)
            return False
        items = [self.spec.from_document(r.id, r.data) for r in records]
        with self._lock:
            self._items = items
            self._snapshot = self._serialize(items)
            self._synced_ids = {item.id for item in items}
            self.pending_deletes = set()
            if self.selection not in self._synced_ids:
                self.selection = None
            self.loaded = True
        logger.info("Loaded %d %s", len(items), self.collection)
        return True

    def get(self, item_id: str) -> Any:
        with self._lock:
            return copy.deepcopy(self._items[self._index_of(item_id)])

    def add(self) -> Any:
        with self._lock:
            existing = {item.id for item in self._items} | self._synced_ids
            item_id = self._id_factory()
            while item_id in existing:
                item_id = self._id_factory()
            item = self.spec.new_entity(item_id)
            self._items.append(item)
            self.selection = item_id
            return copy.deepcopy(item)

    def update(self, item_id: str, patch: Mapping[str, Any]) -> Any:
        accepted = editable_fields(self.spec.entity_type)
        changes = {}
        for key, value in patch.items():
            if key not in accepted:
                raise InvalidFieldError(
                    f"{key} cannot be edited on {self.spec.entity_type.__name__}", key
                )
            check_field_value(self.spec.entity_type, accepted[key], value)
            changes[accepted[key]] = copy.deepcopy(value)
        with self._lock:
            index = self._index_of(item_id)
            self._items[index] = replace(self._items[index], **changes)
            return copy.deepcopy(self._items[index])

    def reorder(self, from_index: int, to_index: int) -> None:
        with self._lock:
            move_item(self._items, from_index, to_index)

    def remove(self, item_id: str) -> None:
        with self._lock:
            del self._items[self._index_of(item_id)]
            # Items that were never persisted need no remote delete.
            if item_id in self._synced_ids:
                self.pending_deletes.add(item_id)
            if self.selection == item_id:
                self.selection = None

    def select(self, item_id: Optional[str]) -> None:
        with self._lock:
            if item_id is not None:
                self._index_of(item_id)
            self.selection = item_id

    @contextmanager
    def edit_slots(self, item_id: str) -> Iterator[SlotList]:
        """Yields the item's featured slots; the buffer stays locked until exit."""
        if not has_field(self.spec.entity_type, "featured"):
            raise InvalidFieldError(
                f"{self.spec.entity_type.__name__} has no featured photos", "featured"
            )
        with self._lock:
            item = self._items[self._index_of(item_id)]
            yield SlotList(item.featured, max_slots=self.max_slots)

    def cancel(self) -> None:
        with self._lock:
            self._items = self._deserialize(self._snapshot)
            self.pending_deletes = set()
            if self.selection is not None and self.selection not in {
                item.id for item in self._items
            }:
                self.selection = None

    def commit(self) -> CommitResult:
        """
        Persists the current sequence and the pending deletes.

        The sequence is captured when the commit starts; edits made while the
        write is in flight stay in the buffer and leave it dirty. If the batch
        write fails nothing local changes and the error propagates.
        """
        with self._lock:
            before = self._serialize(self._items)
            committed = [
                replace(copy.deepcopy(item), order=index)
                for index, item in enumerate(self._items)
            ]
            deletes = sorted(self.pending_deletes)

        batch = self.store.batch()
        for item in committed:
            batch.set(self._path(item.id), self.spec.to_document(item), merge=True)
        batch.commit()

        result = CommitResult(written=len(committed))
        for item_id in deletes:
            try:
                self.store.delete(self._path(item_id))
                result.deleted.append(item_id)
            except StoreUnavailableError as e:
                logger.warning("Best-effort delete of %s failed: %s", self._path(item_id), e.detail)
                result.failed_deletes.append(item_id)

        with self._lock:
            committed_ids = {item.id for item in committed}
            if self._serialize(self._items) == before:
                self._items = copy.deepcopy(committed)
            else:
                orders = {item.id: item.order for item in committed}
                for item in self._items:
                    if item.id in orders:
                        item.order = orders[item.id]
                # Items committed but removed while the write was in flight.
                live_ids = {item.id for item in self._items}
                self.pending_deletes |= committed_ids - live_ids
            self._snapshot = self._serialize(committed)
            self._synced_ids = committed_ids
            self.pending_deletes -= set(deletes)
        logger.info(
            "Committed %d %s (%d deleted, %d delete failures)",
            result.written,
            self.collection,
            len(result.deleted),
            len(result.failed_deletes),
        )
        return result

    def _deserialize(self, snapshot: str) -> List[Any]:
        return [self.spec.entity_type(**data) for data in json.loads(snapshot)]

    def _index_of(self, item_id: str) -> int:
        for index, item in enumerate(self._items):
            if item.id == item_id:
                return index
        raise NotFoundError(self.spec.entity_type.__name__, item_id)

    def _path(self, item_id: str) -> str:
        return f"{self.spec.collection}/{item_id}"


class PageEditor(_SnapshotBuffer):
    """Edit buffer for a single page's content document."""

    EDITABLE = ("summary", "paragraphs", "featured", "banner")

    def __init__(
        self,
        store: ContentStore,
        page_key: PageKey | str,
        max_slots: Optional[int] = None,
    ):
        self.store = store
        self.page_key = PageKey(page_key)
        self.max_slots = max_slots
        self.content = PageContent()
        self.exists = False
        super().__init__()

    def _current(self) -> PageContent:
        return self.content

    def load(self) -> bool:
        content = fetch_page_content(self.store, self.page_key)
        if self.closed:
            logger.debug("Discarding load of page %s for closed editor", self.page_key)
            return False
        with self._lock:
            self.exists = content is not None
            self.content = content or PageContent()
            self._snapshot = self._serialize(self.content)
            self.loaded = True
        return True

    def update(self, patch: Mapping[str, Any]) -> PageContent:
        for key, value in patch.items():
            if key not in self.EDITABLE:
                raise InvalidFieldError(f"{key} cannot be edited on a page", key)
            check_field_value(PageContent, key, value)
        with self._lock:
            self.content = replace(self.content, **copy.deepcopy(dict(patch)))
            return copy.deepcopy(self.content)

    def current_content(self) -> PageContent:
        with self._lock:
            return copy.deepcopy(self.content)

    @contextmanager
    def edit_slots(self) -> Iterator[SlotList]:
        with self._lock:
            yield SlotList(self.content.featured, max_slots=self.max_slots)

    def cancel(self) -> None:
        with self._lock:
            self.content = PageContent(**json.loads(self._snapshot))

    def commit(self) -> None:
        with self._lock:
            captured = copy.deepcopy(self.content)
        save_page_content(self.store, self.page_key, captured)
        with self._lock:
            self._snapshot = self._serialize(captured)
            self.exists = True
        logger.info("Saved page %s", self.page_key)


@dataclass
class EditorSession:
    session_id: str
    owner: str
    kind: str  # "collection" or "page"
    target: str
    editor: Any
    last_used: float = 0.0


class EditorSessionRegistry:
    """
    Holds the open editor sessions, each visible only to the user who
    opened it. Sessions left unused for longer than `ttl_seconds` are
    closed and dropped.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._sessions: Dict[str, EditorSession] = {}
        self._lock = threading.Lock()
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def open_collection(
        self,
        owner: str,
        collection: str,
        store: ContentStore,
        max_slots: Optional[int] = None,
    ) -> EditorSession:
        spec = ENTITY_SPECS.get(collection)
        if spec is None:
            raise NotFoundError("Collection", collection)
        editor = OrderedCollectionEditor(store, spec, max_slots=max_slots)
        return self._open(owner, "collection", collection, editor)

    def open_page(
        self,
        owner: str,
        page_key: str,
        store: ContentStore,
        max_slots: Optional[int] = None,
    ) -> EditorSession:
        try:
            key = PageKey(page_key)
        except ValueError:
            raise NotFoundError("Page", page_key)
        editor = PageEditor(store, key, max_slots=max_slots)
        return self._open(owner, "page", key.value, editor)

    def get(self, session_id: str, owner: str, kind: Optional[str] = None) -> EditorSession:
        self.evict_expired()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None and session.owner == owner:
                session.last_used = self._clock()
        if session is None or session.owner != owner:
            raise NotFoundError("Editor session", session_id)
        if kind is not None and session.kind != kind:
            raise NotFoundError("Editor session", session_id)
        return session

    def close(self, session_id: str, owner: str) -> None:
        session = self.get(session_id, owner)
        session.editor.close()
        with self._lock:
            self._sessions.pop(session_id, None)

    def reset(self) -> None:
        with self._lock:
            for session in self._sessions.values():
                session.editor.close()
            self._sessions.clear()

    def evict_expired(self) -> int:
        if self.ttl_seconds is None:
            return 0
        cutoff = self._clock() - self.ttl_seconds
        with self._lock:
            expired = [s for s in self._sessions.values() if s.last_used < cutoff]
            for session in expired:
                session.editor.close()
                del self._sessions[session.session_id]
        for session in expired:
            logger.info(
                "Evicted idle %s editor for %s (%s)", session.kind, session.target, session.owner
            )
        return len(expired)

    def __len__(self) -> int:
        return len(self._sessions)

    def _open(self, owner: str, kind: str, target: str, editor: Any) -> EditorSession:
        self.evict_expired()
        session = EditorSession(
            session_id=uuid.uuid4().hex,
            owner=owner,
            kind=kind,
            target=target,
            editor=editor,
            last_used=self._clock(),
        )
        with self._lock:
            self._sessions[session.session_id] = session
        try:
            editor.load()
        except CmsError:
            with self._lock:
                self._sessions.pop(session.session_id, None)
            raise
        return session
