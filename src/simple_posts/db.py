from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import SQLModel, create_engine, Session, select

from .errors import NotFound, StorageUnavailable
from .models import Post

logger = logging.getLogger(__name__)


def create_db_engine(url: str) -> Engine:
    connect_args = {}
    if url.startswith("sqlite"):
        # routes run in the threadpool, so the connection crosses threads
        connect_args["check_same_thread"] = False
    return create_engine(url, echo=False, pool_pre_ping=True, connect_args=connect_args)


def init_db(engine: Engine, reset: bool = False) -> None:
    """
    Create the posts table. With ``reset`` the table is dropped first, so every
    start begins with an empty table.
    """
    try:
        if reset:
            SQLModel.metadata.drop_all(engine, tables=[Post.__table__])
            logger.warning("Dropped posts table (RESET_DB_ON_STARTUP)")
        SQLModel.metadata.create_all(engine)
    except SQLAlchemyError as exc:
        raise StorageUnavailable(str(exc)) from exc
    logger.info("Posts table ready")


class PostStore:
    """CRUD over the posts table. Rows come back as plain dicts."""

    def __init__(self, engine: Engine):
        self.engine = engine

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with Session(self.engine) as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error("Storage error: %s", exc)
            raise StorageUnavailable(str(exc)) from exc

    def list(self) -> list[dict]:
        with self._session() as session:
            stmt = select(Post).order_by(Post.created_at.desc(), Post.id.desc())
            posts = session.exec(stmt).all()
            return [p.model_dump() for p in posts]

    def get(self, post_id: int) -> dict:
        with self._session() as session:
            post = session.get(Post, post_id)
            if post is None:
                raise NotFound()
            return post.model_dump()

    def create(self, title: str, content: str, image_path: str | None = None) -> dict:
        with self._session() as session:
            post = Post(
                title=title,
                content=content,
                image_path=image_path,
                created_at=datetime.now(timezone.utc),
            )
            session.add(post)
            session.commit()
            session.refresh(post)
            return post.model_dump()

    def update(self, post_id: int, title: str, content: str, image_path: str | None = None) -> dict:
        """Overwrite title/content; ``image_path`` only when a new one is given."""
        with self._session() as session:
            post = session.get(Post, post_id)
            if post is None:
                raise NotFound()
            post.title = title
            post.content = content
            if image_path is not None:
                post.image_path = image_path
            session.add(post)
            session.commit()
            session.refresh(post)
            return post.model_dump()

    def delete(self, post_id: int) -> dict:
        """Remove the row and return it as it was before deletion."""
        with self._session() as session:
            post = session.get(Post, post_id)
            if post is None:
                raise NotFound()
            deleted = post.model_dump()
            session.delete(post)
            session.commit()
            return deleted

    def image_paths(self) -> set[str]:
        with self._session() as session:
            stmt = select(Post.image_path).where(Post.image_path.is_not(None))
            return set(session.exec(stmt).all())
