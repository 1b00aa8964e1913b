from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from .db import PostStore
from .errors import ValidationError
from .uploads import ImageStorage, ImageUpload

logger = logging.getLogger(__name__)


def validate_post_fields(title: str | None, content: str | None) -> tuple[str, str]:
    if not title or not title.strip() or not content or not content.strip():
        raise ValidationError()
    return title, content


class ImageLifecycleManager:
    """
    Keeps a post's ``image_path`` and the file in the content directory in step.

    Update and delete on the same post id are serialized, and a superseded
    file is only removed after the row write has committed. Removal failures
    are logged and swallowed: the row is the operation of record.
    """

    def __init__(self, store: PostStore, storage: ImageStorage):
        self.store = store
        self.storage = storage
        # post id -> [lock, number of threads holding or waiting on it]
        self._locks: dict[int, list] = {}
        self._registry_lock = threading.Lock()

    @contextmanager
    def _post_lock(self, post_id: int) -> Iterator[None]:
        with self._registry_lock:
            entry = self._locks.setdefault(post_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._registry_lock:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[post_id]

    def _save_upload(self, upload: ImageUpload | None) -> str | None:
        if upload is None:
            return None
        return self.storage.save(upload)

    def _discard(self, image_path: str | None) -> None:
        if image_path:
            self.storage.remove(image_path)

    def create(self, title: str | None, content: str | None, upload: ImageUpload | None = None) -> dict:
        title, content = validate_post_fields(title, content)

        new_path = self._save_upload(upload)
        try:
            return self.store.create(title, content, new_path)
        except Exception:
            self._discard(new_path)
            raise

    def update(
        self,
        post_id: int,
        title: str | None,
        content: str | None,
        upload: ImageUpload | None = None,
    ) -> dict:
        title, content = validate_post_fields(title, content)

        with self._post_lock(post_id):
            old = self.store.get(post_id)

            new_path = self._save_upload(upload)
            try:
                updated = self.store.update(post_id, title, content, new_path)
            except Exception:
                self._discard(new_path)
                raise

            if new_path and old["image_path"] and old["image_path"] != new_path:
                self._discard(old["image_path"])
            return updated

    def delete(self, post_id: int) -> None:
        with self._post_lock(post_id):
            deleted = self.store.delete(post_id)
            self._discard(deleted["image_path"])

    def collect_orphans(self, grace_seconds: float = 60.0) -> list[str]:
        """
        Remove files no post references. Files younger than ``grace_seconds``
        are left alone since they may belong to a request still in flight.
        """
        referenced = {Path(p).name for p in self.store.image_paths()}
        now = time.time()

        removed = []
        for file_path in self.storage.stored_files():
            if file_path.name in referenced:
                continue
            try:
                mtime = file_path.stat().st_mtime
            except FileNotFoundError:
                continue
            if now - mtime < grace_seconds:
                continue
            public = self.storage.public_path(file_path.name)
            if self.storage.remove(public):
                removed.append(public)

        logger.info("Orphan collection removed %d file(s)", len(removed))
        return removed
