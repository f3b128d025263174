import json
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StoreError(Exception):
    """The backing document could not be read or written."""


class DuplicateCategory(Exception):
    pass


class Link(BaseModel):
    id: int
    category: str
    title: str
    url: str
    description: str | None = None
    favicon: str | None = None
    last_visited: datetime | None = None
    visit_count: int = 0
    is_valid: bool | None = None  # None until the first link check
    last_checked: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Category(BaseModel):
    name: str
    sort_order: int = 0  # higher sorts first
    created_at: datetime = Field(default_factory=utcnow)


class Note(BaseModel):
    id: int
    title: str
    content: str
    tags: str | None = None  # comma separated
    sort_order: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def tag_list(self) -> List[str]:
        return [t.strip() for t in (self.tags or "").split(",") if t.strip()]


class AppState(BaseModel):
    next_id: int = 1
    categories: List[Category] = Field(default_factory=list)
    links: List[Link] = Field(default_factory=list)
    notes: List[Note] = Field(default_factory=list)


# Fields callers may change through update_fields
LINK_FIELDS = {
    "category",
    "title",
    "url",
    "description",
    "favicon",
    "last_visited",
    "visit_count",
    "is_valid",
    "last_checked",
}


def load_state(path: Path) -> AppState:
    if not path.exists():
        return AppState()
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return AppState.model_validate(data)
    except (OSError, ValueError, ValidationError) as exc:
        raise StoreError(f"Cannot load {path}: {exc}") from exc


def save_state(state: AppState, path: Path):
    tmp = path.with_name(path.name + ".tmp")
    try:
        tmp.write_text(
            json.dumps(state.model_dump(mode="json"), indent=2),
            encoding="utf-8",
        )
        tmp.replace(path)
    except OSError as exc:
        raise StoreError(f"Cannot write {path}: {exc}") from exc


class LinkStore:
    """
    Links, categories and notes kept in one JSON document.

    With ``path=None`` nothing touches the disk. Every public method takes
    the store lock, so route handlers running in the threadpool and the
    link checker can share one instance. Mutations are all-or-nothing: if
    the document cannot be written the in-memory state is rolled back.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else None
        self._lock = threading.RLock()
        self.state = load_state(self.path) if self.path else AppState()

    def _save(self):
        if self.path:
            save_state(self.state, self.path)

    @contextmanager
    def _transaction(self):
        with self._lock:
            snapshot = self.state.model_copy(deep=True) if self.path else None
            try:
                yield
                self._save()
            except StoreError:
                if snapshot is not None:
                    logger.error("Write to %s failed, rolling back", self.path)
                    self.state = snapshot
                raise

    def _next_id(self) -> int:
        new_id = self.state.next_id
        self.state.next_id += 1
        return new_id

    # -- links ---------------------------------------------------------

    def find_all(self) -> List[Link]:
        with self._lock:
            return sorted(self.state.links, key=lambda l: (l.category, l.title))

    def find_by_id(self, link_id: int) -> Optional[Link]:
        with self._lock:
            return next((l for l in self.state.links if l.id == link_id), None)

    def find_by_category(self, name: str) -> List[Link]:
        with self._lock:
            return sorted(
                (l for l in self.state.links if l.category == name),
                key=lambda l: l.title,
            )

    def add_link(self, category: str, title: str, url: str, description: Optional[str] = None) -> Link:
        with self._transaction():
            self._ensure_category(category)
            link = Link(
                id=self._next_id(),
                category=category,
                title=title,
                url=url,
                description=description,
            )
            self.state.links.append(link)
        return link

    def _apply(self, link: Link, fields: Dict[str, Any]):
        unknown = set(fields) - LINK_FIELDS
        if unknown:
            raise ValueError(f"Unknown link fields: {sorted(unknown)}")
        old_category = link.category
        for key, value in fields.items():
            setattr(link, key, value)
        link.updated_at = utcnow()
        if link.category != old_category:
            self._ensure_category(link.category)
            self._drop_category_if_empty(old_category)

    def update_fields(self, link_id: int, fields: Dict[str, Any]) -> bool:
        unknown = set(fields) - LINK_FIELDS
        if unknown:
            raise ValueError(f"Unknown link fields: {sorted(unknown)}")
        with self._lock:
            if self.find_by_id(link_id) is None:
                return False
            with self._transaction():
                self._apply(self.find_by_id(link_id), fields)
            return True

    def update_many(self, updates: Dict[int, Dict[str, Any]]) -> int:
        """Apply several per-link updates in one write. Returns how many links were found."""
        for fields in updates.values():
            unknown = set(fields) - LINK_FIELDS
            if unknown:
                raise ValueError(f"Unknown link fields: {sorted(unknown)}")
        with self._transaction():
            found = 0
            for link_id, fields in updates.items():
                link = self.find_by_id(link_id)
                if link is not None:
                    self._apply(link, fields)
                    found += 1
        return found

    def delete_link(self, link_id: int) -> Optional[Link]:
        with self._lock:
            link = self.find_by_id(link_id)
            if not link:
                return None
            with self._transaction():
                self.state.links = [l for l in self.state.links if l.id != link_id]
                self._drop_category_if_empty(link.category)
            return link

    def record_visit(self, link_id: int) -> bool:
        with self._lock:
            if self.find_by_id(link_id) is None:
                return False
            with self._transaction():
                link = self.find_by_id(link_id)
                link.last_visited = utcnow()
                link.visit_count += 1
                link.updated_at = link.last_visited
            return True

    def recent_visits(self, limit: int = 10) -> List[Link]:
        with self._lock:
            visited = [l for l in self.state.links if l.last_visited is not None]
        visited.sort(key=lambda l: l.last_visited, reverse=True)
        return visited[:limit]

    def search(self, q: str) -> List[Link]:
        query = (q or "").lower()
        with self._lock:
            return [
                l
                for l in self.state.links
                if query in l.title.lower()
                or query in (l.description or "").lower()
                or query in l.category.lower()
            ]

    def import_links(self, records: Iterable[Dict[str, Any]]) -> List[Link]:
        """Add many links in one write. Records must already be normalized."""
        records = list(records)
        if not records:
            return []
        added = []
        with self._transaction():
            for rec in records:
                self._ensure_category(rec["category"])
                link = Link(
                    id=self._next_id(),
                    category=rec["category"],
                    title=rec["title"],
                    url=rec["url"],
                    description=rec.get("description"),
                )
                self.state.links.append(link)
                added.append(link)
        return added

    def export(self) -> List[Link]:
        with self._lock:
            return list(self.state.links)

    # -- categories ----------------------------------------------------

    def _find_category(self, name: str) -> Optional[Category]:
        return next((c for c in self.state.categories if c.name == name), None)

    def _ensure_category(self, name: str) -> Category:
        cat = self._find_category(name)
        if cat is None:
            top = max((c.sort_order for c in self.state.categories), default=0)
            cat = Category(name=name, sort_order=top + 1)
            self.state.categories.append(cat)
        return cat

    def _drop_category_if_empty(self, name: str):
        if not any(l.category == name for l in self.state.links):
            self.state.categories = [c for c in self.state.categories if c.name != name]

    def list_categories(self, descending: bool = True) -> List[Category]:
        with self._lock:
            return sorted(self.state.categories, key=lambda c: c.sort_order, reverse=descending)

    def add_category(self, name: str) -> Category:
        with self._lock:
            if self._find_category(name):
                raise DuplicateCategory(name)
            with self._transaction():
                cat = self._ensure_category(name)
            return cat

    def rename_category(self, old: str, new: str) -> int:
        """Move every link of ``old`` to ``new``. Returns the number of links moved."""
        with self._transaction():
            source = self._find_category(old)
            moved = 0
            for link in self.state.links:
                if link.category == old:
                    link.category = new
                    link.updated_at = utcnow()
                    moved += 1
            if source is not None and old != new:
                if self._find_category(new) is None:
                    source.name = new
                else:
                    self.state.categories.remove(source)
        return moved

    def delete_category(self, name: str) -> int:
        """Delete a category with all its links. Returns the number of links removed."""
        with self._transaction():
            before = len(self.state.links)
            self.state.links = [l for l in self.state.links if l.category != name]
            self.state.categories = [c for c in self.state.categories if c.name != name]
        return before - len(self.state.links)

    def reorder_categories(self, names: List[str]):
        """First name gets the highest sort order."""
        with self._transaction():
            total = len(names)
            for i, name in enumerate(names):
                cat = self._find_category(name)
                if cat is not None:
                    cat.sort_order = total - i

    # -- notes ---------------------------------------------------------

    def list_notes(self) -> List[Note]:
        with self._lock:
            return sorted(self.state.notes, key=lambda n: (-n.sort_order, n.id))

    def find_note(self, note_id: int) -> Optional[Note]:
        with self._lock:
            return next((n for n in self.state.notes if n.id == note_id), None)

    def add_note(self, title: str, content: str, tags: Optional[str] = None) -> Note:
        with self._transaction():
            top = max((n.sort_order for n in self.state.notes), default=0)
            note = Note(id=self._next_id(), title=title, content=content, tags=tags, sort_order=top + 1)
            self.state.notes.append(note)
        return note

    def update_note(self, note_id: int, title: str, content: str, tags: Optional[str] = None) -> Optional[Note]:
        with self._lock:
            if self.find_note(note_id) is None:
                return None
            with self._transaction():
                note = self.find_note(note_id)
                note.title = title
                note.content = content
                note.tags = tags
                note.updated_at = utcnow()
            return note

    def delete_note(self, note_id: int) -> bool:
        with self._lock:
            if self.find_note(note_id) is None:
                return False
            with self._transaction():
                self.state.notes = [n for n in self.state.notes if n.id != note_id]
            return True

    def reorder_notes(self, ids: List[int]):
        with self._transaction():
            total = len(ids)
            for i, note_id in enumerate(ids):
                note = self.find_note(note_id)
                if note is not None:
                    note.sort_order = total - i
