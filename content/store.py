"""
content/store.py -- SQLAlchemy-backed persistence layer for articles and folders.

Uses SQLAlchemy Core (not ORM) so the dataclasses in content/models.py remain
the authoritative domain representation.

Pattern: Repository + Data Mapper. ContentStore is the repository; the
_row_to_* functions are the mappers. Route handlers never touch SQL directly.

Invariants enforced here:
  - password is stored only for visibility == "password" and dropped for
    every other tier (see _normalize_password).
  - reorder_folders() / reorder_articles() write every position inside one
    transaction. An unknown id aborts the whole batch.
  - delete_folder() detaches the folder's articles in the same transaction.

Slug conflicts raise sqlalchemy.exc.IntegrityError; routes translate them
into 409 responses.

Usage:
    store = ContentStore("sqlite:///data/wiki.db")
    folder_id = store.create_folder(Folder(slug="guides", name="Guides"))
    store.create_article(Article(slug="intro", title="Intro", content="# Hi", author_id=1, folder_id=folder_id))
    store.close()
"""

import re
import unicodedata
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, or_, select
from sqlalchemy.engine import Engine

from content.models import Article, Folder

_DEFAULT_DB_URL = f"sqlite:///{Path('data') / 'wiki.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_folders = Table(
    "folders",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("slug", String(255), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("description", Text),
    Column("visibility", String(20), nullable=False, server_default="logged"),
    Column("password", Text),  # plaintext; only for visibility == "password"
    Column("position", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)

_articles = Table(
    "articles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("slug", String(255), nullable=False, unique=True),
    Column("title", String(255), nullable=False),
    Column("content", Text, nullable=False),
    Column("folder_id", Integer, index=True),
    Column("visibility", String(20), nullable=False, server_default="logged"),
    Column("password", Text),
    Column("image", Text),
    Column("description", Text),
    Column("author_id", Integer, nullable=False),
    Column("position", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_MUTABLE_ARTICLE_FIELDS = frozenset(
    {"title", "content", "folder_id", "visibility", "password", "image", "description"}
)
_MUTABLE_FOLDER_FIELDS = frozenset({"name", "description", "visibility", "password"})


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def slugify(text: str) -> str:
    """Lowercase ASCII slug: accents stripped, runs of other characters -> "-".

    "Élan Vital!" -> "elan-vital"
    """
    normalized = unicodedata.normalize("NFD", str(text).lower())
    stripped = "".join(ch for ch in normalized if unicodedata.category(ch) != "Mn")
    return re.sub(r"[^a-z0-9]+", "-", stripped).strip("-")


def _normalize_password(visibility: str, password: Optional[str]) -> Optional[str]:
    return (password or None) if visibility == "password" else None


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class ContentStore:
    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    def create_folder(self, folder: Folder) -> int:
        """Insert a folder at the end of the folder order and return its ID."""
        # Computed inside the INSERT so concurrent creates never share a position.
        next_position = select(func.coalesce(func.max(_folders.c.position) + 1, 0)).scalar_subquery()
        with self.engine.begin() as conn:
            result = conn.execute(
                _folders.insert().values(
                    slug=folder.slug,
                    name=folder.name,
                    description=folder.description,
                    visibility=folder.visibility,
                    password=_normalize_password(folder.visibility, folder.password),
                    position=next_position,
                    created_at=_now_iso(),
                )
            )
            return result.inserted_primary_key[0]

    def get_folder(self, slug: str) -> Optional[Folder]:
        with self.engine.connect() as conn:
            row = conn.execute(_folders.select().where(_folders.c.slug == slug)).fetchone()
        return _row_to_folder(row) if row is not None else None

    def get_folder_by_id(self, folder_id: int) -> Optional[Folder]:
        with self.engine.connect() as conn:
            row = conn.execute(_folders.select().where(_folders.c.id == folder_id)).fetchone()
        return _row_to_folder(row) if row is not None else None

    def list_folders(self) -> list[Folder]:
        """Return all folders in display order (position, then name)."""
        with self.engine.connect() as conn:
            rows = conn.execute(_folders.select().order_by(_folders.c.position, _folders.c.name)).fetchall()
        return [_row_to_folder(r) for r in rows]

    def update_folder(self, folder_id: int, **fields) -> bool:
        """Update mutable folder fields: name, description, visibility, password.

        visibility and password are written together so the password
        invariant holds after every update. Returns False if not found.
        """
        unknown = set(fields) - _MUTABLE_FOLDER_FIELDS
        if unknown:
            raise ValueError(f"Unknown folder fields: {unknown!r}")
        if "visibility" in fields or "password" in fields:
            current = self.get_folder_by_id(folder_id)
            if current is None:
                return False
            visibility = fields.get("visibility", current.visibility)
            fields["password"] = _normalize_password(visibility, fields.get("password", current.password))
        if not fields:
            return False
        with self.engine.connect() as conn:
            result = conn.execute(_folders.update().where(_folders.c.id == folder_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_folder(self, folder_id: int) -> bool:
        """Delete a folder; its articles become unfiled rather than deleted."""
        with self.engine.begin() as conn:
            conn.execute(_articles.update().where(_articles.c.folder_id == folder_id).values(folder_id=None))
            result = conn.execute(_folders.delete().where(_folders.c.id == folder_id))
        return result.rowcount > 0

    def reorder_folders(self, ordered_ids: list[int]) -> None:
        """Assign positions 0..n-1 to the given folder ids, all-or-nothing.

        Raises ValueError (and writes nothing) if any id does not exist.
        """
        with self.engine.begin() as conn:
            for position, folder_id in enumerate(ordered_ids):
                result = conn.execute(
                    _folders.update().where(_folders.c.id == folder_id).values(position=position)
                )
                if result.rowcount == 0:
                    raise ValueError(f"Unknown folder id: {folder_id}")

    # ------------------------------------------------------------------
    # Articles
    # ------------------------------------------------------------------

    def create_article(self, article: Article) -> int:
        """Insert an article at the end of its folder and return its ID."""
        now = _now_iso()
        next_position = (
            select(func.coalesce(func.max(_articles.c.position) + 1, 0))
            .where(_articles.c.folder_id == article.folder_id)
            .scalar_subquery()
        )
        with self.engine.begin() as conn:
            result = conn.execute(
                _articles.insert().values(
                    slug=article.slug,
                    title=article.title,
                    content=article.content,
                    folder_id=article.folder_id,
                    visibility=article.visibility,
                    password=_normalize_password(article.visibility, article.password),
                    image=article.image,
                    description=article.description,
                    author_id=article.author_id,
                    position=next_position,
                    created_at=now,
                    updated_at=now,
                )
            )
            return result.inserted_primary_key[0]

    def get_article(self, slug: str) -> Optional[Article]:
        with self.engine.connect() as conn:
            row = conn.execute(_articles.select().where(_articles.c.slug == slug)).fetchone()
        return _row_to_article(row) if row is not None else None

    def get_article_by_id(self, article_id: int) -> Optional[Article]:
        with self.engine.connect() as conn:
            row = conn.execute(_articles.select().where(_articles.c.id == article_id)).fetchone()
        return _row_to_article(row) if row is not None else None

    def list_articles(self) -> list[Article]:
        """Return all articles, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(_articles.select().order_by(_articles.c.created_at.desc())).fetchall()
        return [_row_to_article(r) for r in rows]

    def list_articles_by_folder(self, folder_id: int) -> list[Article]:
        """Return a folder's articles in their display order."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _articles.select()
                .where(_articles.c.folder_id == folder_id)
                .order_by(_articles.c.position, _articles.c.created_at.desc())
            ).fetchall()
        return [_row_to_article(r) for r in rows]

    def search_articles(self, query: str) -> list[Article]:
        """Substring match on title or content. LIKE wildcards in query are literal."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _articles.select()
                .where(
                    or_(
                        _articles.c.title.contains(query, autoescape=True),
                        _articles.c.content.contains(query, autoescape=True),
                    )
                )
                .order_by(_articles.c.created_at.desc())
            ).fetchall()
        return [_row_to_article(r) for r in rows]

    def update_article(self, article_id: int, **fields) -> bool:
        """Update mutable article fields and stamp updated_at.

        Accepts any subset of: title, content, folder_id, visibility,
        password, image, description. Returns False if not found.
        """
        unknown = set(fields) - _MUTABLE_ARTICLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown article fields: {unknown!r}")
        if "visibility" in fields or "password" in fields:
            current = self.get_article_by_id(article_id)
            if current is None:
                return False
            visibility = fields.get("visibility", current.visibility)
            fields["password"] = _normalize_password(visibility, fields.get("password", current.password))
        if not fields:
            return False
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_articles.update().where(_articles.c.id == article_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_article(self, article_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_articles.delete().where(_articles.c.id == article_id))
            conn.commit()
        return result.rowcount > 0

    def reorder_articles(self, folder_id: int, ordered_ids: list[int]) -> None:
        """Assign positions 0..n-1 to articles of one folder, all-or-nothing.

        Raises ValueError (and writes nothing) if any id is not an article of
        folder_id.
        """
        with self.engine.begin() as conn:
            existing = {
                row.id
                for row in conn.execute(select(_articles.c.id).where(_articles.c.folder_id == folder_id)).fetchall()
            }
            for article_id in ordered_ids:
                if article_id not in existing:
                    raise ValueError(f"Article {article_id} is not in folder {folder_id}")
            for position, article_id in enumerate(ordered_ids):
                conn.execute(_articles.update().where(_articles.c.id == article_id).values(position=position))

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern -- DB row -> domain dataclass)
# ---------------------------------------------------------------------------


def _row_to_folder(row) -> Folder:
    return Folder(
        id=row.id,
        slug=row.slug,
        name=row.name,
        description=row.description,
        visibility=row.visibility,
        password=row.password,
        position=row.position,
        created_at=row.created_at,
    )


def _row_to_article(row) -> Article:
    return Article(
        id=row.id,
        slug=row.slug,
        title=row.title,
        content=row.content,
        folder_id=row.folder_id,
        visibility=row.visibility,
        password=row.password,
        image=row.image,
        description=row.description,
        author_id=row.author_id,
        position=row.position,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
