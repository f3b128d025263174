import asyncio
import logging
from pathlib import Path
from typing import List, Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from .config import Settings
from .favicon import FaviconResolver
from .fetcher import HttpFetcher
from .models import (
    CategoryIn,
    CategoryOrder,
    CategoryRename,
    ImportIn,
    LinkIn,
    LinkUpdate,
    NoteIn,
    NoteOrder,
)
from .scheduler import run_daily
from .storage import DuplicateCategory, Link, LinkStore, StoreError
from .urls import is_valid_url, normalize_url
from .validator import LinkValidator

logger = logging.getLogger(__name__)


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def _with_icon(links: List[Link], default_icon: Optional[str]) -> List[Link]:
    if not default_icon:
        return links
    return [l if l.favicon else l.model_copy(update={"favicon": default_icon}) for l in links]


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[LinkStore] = None,
    fetcher: Optional[HttpFetcher] = None,
    validator: Optional[LinkValidator] = None,
) -> FastAPI:
    settings = settings or Settings()
    if store is None:
        store = LinkStore(Path(settings.STATE_FILE) if settings.STATE_FILE else None)
    fetcher = fetcher or HttpFetcher(timeout=settings.HTTP_TIMEOUT, user_agent=settings.USER_AGENT)
    requires_get = settings.requires_get
    resolver = FaviconResolver(fetcher, requires_get=requires_get)
    validator = validator or LinkValidator(
        fetcher,
        batch_size=settings.CHECK_BATCH_SIZE,
        pause=settings.CHECK_BATCH_PAUSE,
        requires_get=requires_get,
    )

    app = FastAPI(title="linknav")
    app.state.settings = settings
    app.state.store = store
    app.state.resolver = resolver
    app.state.validator = validator

    tasks: set = set()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def refresh_favicon(link_id: int, url: str):
        favicon = resolver.resolve(url)
        if not favicon:
            return
        link = store.find_by_id(link_id)
        # The url may have been edited while we were looking
        if link and link.url == url:
            store.update_fields(link_id, {"favicon": favicon})

    async def background_sweep():
        try:
            await validator.validate_all(store)
        except Exception:
            logger.exception("Link check failed")

    def spawn(coro):
        task = asyncio.create_task(coro)
        tasks.add(task)
        task.add_done_callback(tasks.discard)
        return task

    @app.on_event("startup")
    async def startup_event():
        logger.info("Starting with %s", settings)
        if settings.CHECK_SCHEDULE:
            spawn(run_daily(validator, store, settings.check_hour, settings.check_minute))

    @app.on_event("shutdown")
    async def shutdown_event():
        for task in list(tasks):
            task.cancel()

    @app.get("/api/health")
    def health():
        return {"status": "ok"}

    # -- links ---------------------------------------------------------

    @app.get("/api/links/all")
    def all_links(default_icon: Optional[str] = None):
        return _with_icon(store.find_all(), default_icon)

    @app.get("/api/links/{category}")
    def links_in_category(category: str, default_icon: Optional[str] = None):
        if category == "all":
            return _with_icon(store.find_all(), default_icon)
        return _with_icon(store.find_by_category(category), default_icon)

    @app.post("/api/links")
    def add_link(body: LinkIn, background_tasks: BackgroundTasks):
        category, title = _clean(body.category), _clean(body.title)
        if not category or not title or not _clean(body.url):
            raise HTTPException(400, "category, title and url are required")
        url = normalize_url(body.url)
        if not is_valid_url(url):
            raise HTTPException(400, "Invalid URL")

        link = store.add_link(category, title, url, _clean(body.description) or None)
        background_tasks.add_task(refresh_favicon, link.id, url)
        return {"message": "Link added", "link": link}

    @app.put("/api/links/{id}")
    def update_link(id: int, body: LinkUpdate, background_tasks: BackgroundTasks):
        title = _clean(body.title)
        if not title or not _clean(body.url):
            raise HTTPException(400, "title and url are required")
        url = normalize_url(body.url)
        if not is_valid_url(url):
            raise HTTPException(400, "Invalid URL")

        link = store.find_by_id(id)
        if not link:
            raise HTTPException(404, "Link not found")
        url_changed = link.url != url
        fields = {"title": title, "url": url, "description": _clean(body.description) or None}
        if url_changed:
            fields.update(favicon=None, is_valid=None, last_checked=None)
        if not store.update_fields(id, fields):
            raise HTTPException(404, "Link not found")
        if url_changed:
            background_tasks.add_task(refresh_favicon, id, url)
        return {"message": "Link updated", "link": store.find_by_id(id)}

    @app.delete("/api/links/{id}")
    def delete_link(id: int):
        if store.delete_link(id) is None:
            raise HTTPException(404, "Link not found")
        return {"message": "Link deleted"}

    @app.post("/api/visit/{id}")
    def record_visit(id: int):
        if not store.record_visit(id):
            raise HTTPException(404, "Link not found")
        return {"message": "Visit recorded"}

    @app.get("/api/recent-visits")
    def recent_visits():
        return store.recent_visits(settings.RECENT_LIMIT)

    @app.get("/api/search")
    def search(q: str = ""):
        return store.search(q)

    @app.get("/api/preview")
    def preview(url: str):
        return resolver.preview(url)

    # -- categories ----------------------------------------------------

    @app.get("/api/categories")
    def list_categories(sort: str = "desc"):
        cats = store.list_categories(descending=sort != "asc")
        return [c.name for c in cats]

    @app.post("/api/categories")
    def add_category(body: CategoryIn):
        name = _clean(body.category)
        if not name:
            raise HTTPException(400, "Category name required")
        try:
            store.add_category(name)
        except DuplicateCategory:
            raise HTTPException(409, "Category already exists")
        return {"message": "Category added", "category": name}

    @app.post("/api/categories/reorder")
    def reorder_categories(body: CategoryOrder):
        names = [_clean(n) for n in body.categories if _clean(n)]
        if not names:
            raise HTTPException(400, "categories must be a non-empty list")
        store.reorder_categories(names)
        return {"message": "Category order updated"}

    @app.put("/api/categories/{old_category}")
    def rename_category(old_category: str, body: CategoryRename):
        new = _clean(body.newCategory)
        if not new:
            raise HTTPException(400, "newCategory required")
        moved = store.rename_category(old_category, new)
        logger.info("Renamed category %r to %r (%d links)", old_category, new, moved)
        return {"message": "Category renamed", "moved": moved}

    @app.delete("/api/categories/{name}")
    def delete_category(name: str):
        removed = store.delete_category(name)
        return {"message": "Category deleted", "removed": removed}

    # -- notes ---------------------------------------------------------

    @app.get("/api/notes")
    def list_notes():
        return store.list_notes()

    @app.post("/api/notes")
    def add_note(body: NoteIn):
        title, content = _clean(body.title), _clean(body.content)
        if not title or not content:
            raise HTTPException(400, "title and content are required")
        return store.add_note(title, content, _clean(body.tags) or None)

    @app.post("/api/notes/reorder")
    def reorder_notes(body: NoteOrder):
        if not body.notes:
            raise HTTPException(400, "notes must be a non-empty list")
        store.reorder_notes(body.notes)
        return {"message": "Note order updated"}

    @app.put("/api/notes/{id}")
    def update_note(id: int, body: NoteIn):
        title, content = _clean(body.title), _clean(body.content)
        if not title or not content:
            raise HTTPException(400, "title and content are required")
        note = store.update_note(id, title, content, _clean(body.tags) or None)
        if not note:
            raise HTTPException(404, "Note not found")
        return note

    @app.delete("/api/notes/{id}")
    def delete_note(id: int):
        if not store.delete_note(id):
            raise HTTPException(404, "Note not found")
        return {"message": "Note deleted"}

    # -- import / export -----------------------------------------------

    @app.post("/api/import")
    def import_links(body: ImportIn, background_tasks: BackgroundTasks):
        records = []
        skipped = 0
        for item in body.links:
            url = normalize_url(item.url)
            if not _clean(item.category) or not _clean(item.title) or not _clean(item.url) or not is_valid_url(url):
                skipped += 1
                continue
            records.append(
                {
                    "category": _clean(item.category),
                    "title": _clean(item.title),
                    "url": url,
                    "description": _clean(item.description) or None,
                }
            )
        added = store.import_links(records)
        for link in added:
            background_tasks.add_task(refresh_favicon, link.id, link.url)
        return {"message": "Links imported", "imported": len(added), "skipped": skipped}

    @app.get("/api/export")
    def export_json():
        return store.export()

    @app.get("/api/export/txt", response_class=PlainTextResponse)
    def export_txt():
        return "\n".join(l.url for l in store.export())

    # -- link checking -------------------------------------------------

    @app.post("/api/check-links")
    async def check_links(background: bool = False):
        if validator.running:
            return {"status": "skipped"}
        if background:
            spawn(background_sweep())
            return {"status": "started"}
        try:
            report = await validator.validate_all(store)
        except StoreError as exc:
            logger.exception("Link check failed")
            raise HTTPException(500, f"Link check failed: {exc}")
        if report is None:
            return {"status": "skipped"}
        return {"status": "done", "report": report}

    return app


app = create_app()
