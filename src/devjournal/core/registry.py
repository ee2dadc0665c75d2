"""Persistent page registry.

One SQLite table keyed by page path. Every mutation is a single SQL
statement so the storage engine's row atomicity is all the consistency
the registry relies on.
"""

import logging
from pathlib import Path, PurePosixPath

from sqlalchemy import Boolean, Integer, Text, create_engine, not_, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from devjournal.core.errors import PageNotFoundError, RegistryError, UpsertError
from devjournal.core.models import NavEntry, Page

logger = logging.getLogger(__name__)

MARKDOWN_EXTENSION = ".md"
HOME_PAGE = "home.md"


class Base(DeclarativeBase):
    pass


class PageRecord(Base):
    """Row of the ``pages`` table."""

    __tablename__ = "pages"

    path: Mapped[str] = mapped_column(Text, primary_key=True)
    title: Mapped[str] = mapped_column(Text)
    is_visible: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="1"
    )
    visit_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )


def derive_title(path: str) -> str:
    """Convert a page path like ``blog/my-first-post.md`` to ``My First Post``."""
    stem = PurePosixPath(path).stem.replace("-", " ").replace("_", " ")
    chars = []
    previous = " "
    for char in stem:
        # A word starts after any character that is not a letter or digit
        chars.append(char.upper() if not previous.isalnum() else char)
        previous = char
    return "".join(chars)


def display_path(path: str) -> str:
    """Convert a stored page path to the form used in links."""
    shown = path.removesuffix(MARKDOWN_EXTENSION)
    if shown == HOME_PAGE.removesuffix(MARKDOWN_EXTENSION):
        return "/"
    return shown


def normalize_page_path(path: str) -> str:
    """Convert a URL path to the stored page path.

    ``""`` and ``"/"`` map to the home page; ``.md`` is appended if missing.
    """
    path = path.strip("/")
    if not path:
        return HOME_PAGE
    if not path.endswith(MARKDOWN_EXTENSION):
        path += MARKDOWN_EXTENSION
    return path


class PageRegistry:
    """Query and mutation operations over the ``pages`` table."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self._sessions = sessionmaker(engine, expire_on_commit=False)

    def create_schema(self) -> None:
        """Create the table if it is absent."""
        Base.metadata.create_all(self.engine)

    def upsert_page(self, path: str) -> bool:
        """Register a page if it is not known yet.

        The title is derived only here, so an existing row keeps the title it
        was created with. Returns True when a row was created.
        """
        stmt = (
            sqlite_insert(PageRecord)
            .values(path=path, title=derive_title(path))
            .on_conflict_do_nothing(index_elements=[PageRecord.path])
        )
        try:
            with self._sessions.begin() as session:
                created = session.execute(stmt).rowcount == 1
        except SQLAlchemyError as exc:
            raise UpsertError(path) from exc
        return created

    def get_by_path(self, path: str) -> Page:
        """Get a page by its stored path."""
        try:
            with self._sessions() as session:
                record = session.get(PageRecord, path)
                if record is None:
                    raise PageNotFoundError(path)
                return Page.model_validate(record)
        except SQLAlchemyError as exc:
            raise RegistryError(f"Failed to load page: {path}") from exc

    def list_all(self) -> list[Page]:
        """All pages ordered by path."""
        try:
            with self._sessions() as session:
                records = session.scalars(select(PageRecord).order_by(PageRecord.path))
                return [Page.model_validate(record) for record in records]
        except SQLAlchemyError as exc:
            raise RegistryError("Failed to list pages") from exc

    def list_visible(self) -> list[NavEntry]:
        """Visible pages ordered by path, with display paths."""
        stmt = (
            select(PageRecord.path, PageRecord.title)
            .where(PageRecord.is_visible.is_(True))
            .order_by(PageRecord.path)
        )
        try:
            with self._sessions() as session:
                rows = session.execute(stmt).all()
        except SQLAlchemyError as exc:
            raise RegistryError("Failed to list visible pages") from exc
        return [NavEntry(path=display_path(path), title=title) for path, title in rows]

    def increment_visit(self, path: str) -> None:
        """Count a visit. Best effort: failures are logged and dropped."""
        stmt = (
            update(PageRecord)
            .where(PageRecord.path == path)
            .values(visit_count=PageRecord.visit_count + 1)
        )
        try:
            with self._sessions.begin() as session:
                session.execute(stmt)
        except SQLAlchemyError:
            logger.exception("Error incrementing visit count for %s", path)

    def toggle_visibility(self, path: str) -> bool:
        """Flip a page's visibility and return the new value."""
        stmt = (
            update(PageRecord)
            .where(PageRecord.path == path)
            .values(is_visible=not_(PageRecord.is_visible))
        )
        try:
            with self._sessions.begin() as session:
                result = session.execute(stmt)
                if result.rowcount == 0:
                    raise PageNotFoundError(path)
                return session.scalar(
                    select(PageRecord.is_visible).where(PageRecord.path == path)
                )
        except SQLAlchemyError as exc:
            raise RegistryError(f"Failed to toggle visibility: {path}") from exc


def create_registry(db_path: Path | str) -> PageRegistry:
    """Open (or create) the SQLite database and make sure the schema exists."""
    connect_args = {"check_same_thread": False}
    if str(db_path) == ":memory:":
        # A private in-memory database exists per connection, so share one.
        engine = create_engine("sqlite://", connect_args=connect_args, poolclass=StaticPool)
    else:
        engine = create_engine(f"sqlite:///{db_path}", connect_args=connect_args)
    registry = PageRegistry(engine)
    registry.create_schema()
    logger.info("Page registry ready at %s", db_path)
    return registry
