import os
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from unittest.mock import patch

import pytest

from simple_posts.errors import NotFound, StorageUnavailable, ValidationError

pytestmark = pytest.mark.unit


def _names(directory: Path) -> list[str]:
    return sorted(p.name for p in directory.iterdir()) if directory.exists() else []


def test_create_validates_before_touching_files(lifecycle, uploads_dir, png_upload):
    with pytest.raises(ValidationError):
        lifecycle.create(None, "content", png_upload())
    with pytest.raises(ValidationError):
        lifecycle.create("title", "", png_upload())
    assert _names(uploads_dir) == []
    assert lifecycle.store.list() == []


def test_create_discards_upload_when_insert_fails(lifecycle, uploads_dir, png_upload):
    with patch.object(lifecycle.store, "create", side_effect=StorageUnavailable("boom")):
        with pytest.raises(StorageUnavailable):
            lifecycle.create("T", "C", png_upload())
    assert _names(uploads_dir) == []


def test_update_without_new_image_keeps_old_one(lifecycle, storage, png_upload):
    post = lifecycle.create("T", "C", png_upload("a.png"))

    updated = lifecycle.update(post["id"], "T2", "C2")

    assert updated["image_path"] == post["image_path"]
    assert storage.resolve(post["image_path"]).exists()


def test_update_with_new_image_deletes_old_file(lifecycle, storage, uploads_dir, png_upload):
    post = lifecycle.create("T", "C", png_upload("a.png"))

    updated = lifecycle.update(post["id"], "T", "C", png_upload("b.png"))

    assert not storage.resolve(post["image_path"]).exists()
    assert _names(uploads_dir) == [Path(updated["image_path"]).name]


def test_update_missing_post_writes_nothing(lifecycle, uploads_dir, png_upload):
    with pytest.raises(NotFound):
        lifecycle.update(99, "T", "C", png_upload())
    assert _names(uploads_dir) == []


def test_update_tolerates_old_file_already_gone(lifecycle, storage, png_upload):
    post = lifecycle.create("T", "C", png_upload("a.png"))
    storage.resolve(post["image_path"]).unlink()

    updated = lifecycle.update(post["id"], "T", "C", png_upload("b.png"))
    assert storage.resolve(updated["image_path"]).exists()


def test_old_file_survives_failed_row_write(lifecycle, storage, uploads_dir, png_upload):
    post = lifecycle.create("T", "C", png_upload("a.png"))

    with patch.object(lifecycle.store, "update", side_effect=StorageUnavailable("boom")):
        with pytest.raises(StorageUnavailable):
            lifecycle.update(post["id"], "T", "C", png_upload("b.png"))

    assert _names(uploads_dir) == [Path(post["image_path"]).name]


def test_delete_removes_row_then_file(lifecycle, storage, png_upload):
    post = lifecycle.create("T", "C", png_upload())

    lifecycle.delete(post["id"])

    with pytest.raises(NotFound):
        lifecycle.store.get(post["id"])
    assert not storage.resolve(post["image_path"]).exists()


def test_delete_keeps_file_when_row_delete_fails(lifecycle, storage, png_upload):
    post = lifecycle.create("T", "C", png_upload())

    with patch.object(lifecycle.store, "delete", side_effect=StorageUnavailable("boom")):
        with pytest.raises(StorageUnavailable):
            lifecycle.delete(post["id"])

    assert storage.resolve(post["image_path"]).exists()


def test_delete_missing_post(lifecycle):
    with pytest.raises(NotFound):
        lifecycle.delete(12345)


def test_concurrent_updates_leave_exactly_the_referenced_file(lifecycle, uploads_dir, png_upload):
    post = lifecycle.create("T", "C", png_upload("start.png"))

    def replace(i):
        return lifecycle.update(post["id"], "T", f"C{i}", png_upload(f"img{i}.png"))

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(replace, range(16)))

    current = lifecycle.store.get(post["id"])["image_path"]
    assert _names(uploads_dir) == [Path(current).name]


def test_collect_orphans_removes_only_old_unreferenced_files(lifecycle, storage, uploads_dir, png_upload):
    kept = lifecycle.create("T", "C", png_upload("kept.png"))

    old_orphan = uploads_dir / "1-old.png"
    old_orphan.write_bytes(b"x")
    an_hour_ago = time.time() - 3600
    os.utime(old_orphan, (an_hour_ago, an_hour_ago))
    os.utime(storage.resolve(kept["image_path"]), (an_hour_ago, an_hour_ago))

    fresh_orphan = uploads_dir / "2-fresh.png"
    fresh_orphan.write_bytes(b"x")

    removed = lifecycle.collect_orphans(grace_seconds=60)

    assert removed == ["/uploads/1-old.png"]
    assert not old_orphan.exists()
    assert fresh_orphan.exists()
    assert storage.resolve(kept["image_path"]).exists()


def test_collect_orphans_on_missing_directory(lifecycle):
    assert lifecycle.collect_orphans() == []


def test_post_locks_are_released(lifecycle, png_upload):
    for missing_id in range(1000, 1050):
        with pytest.raises(NotFound):
            lifecycle.update(missing_id, "T", "C")
        with pytest.raises(NotFound):
            lifecycle.delete(missing_id)
    assert lifecycle._locks == {}

    post = lifecycle.create("T", "C", png_upload())
    with ThreadPoolExecutor(max_workers=4) as pool:
        list(pool.map(lambda i: lifecycle.update(post["id"], "T", f"C{i}"), range(8)))
    lifecycle.delete(post["id"])
    assert lifecycle._locks == {}


def test_collect_orphans_skips_files_that_vanish(lifecycle, storage, uploads_dir):
    uploads_dir.mkdir(parents=True)
    old_orphan = uploads_dir / "1-old.png"
    old_orphan.write_bytes(b"x")
    an_hour_ago = time.time() - 3600
    os.utime(old_orphan, (an_hour_ago, an_hour_ago))
    vanished = uploads_dir / "2-vanished.png"

    with patch.object(storage, "stored_files", return_value=[vanished, old_orphan]):
        removed = lifecycle.collect_orphans(grace_seconds=60)

    assert removed == ["/uploads/1-old.png"]
