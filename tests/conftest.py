from io import BytesIO
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from simple_posts.api import create_app
from simple_posts.config import Settings
from simple_posts.db import PostStore, create_db_engine, init_db
from simple_posts.lifecycle import ImageLifecycleManager
from simple_posts.uploads import ImageStorage, ImageUpload


def png_bytes(size=(32, 32)) -> bytes:
    img = Image.new("RGB", size)
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'posts.db'}",
        uploads_dir=tmp_path / "uploads",
    )


@pytest.fixture()
def uploads_dir(settings: Settings) -> Path:
    return settings.uploads_dir


@pytest.fixture()
def client(settings: Settings):
    app = create_app(settings)
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def store(settings: Settings):
    engine = create_db_engine(settings.database_url)
    init_db(engine)
    yield PostStore(engine)
    engine.dispose()


@pytest.fixture()
def storage(uploads_dir: Path) -> ImageStorage:
    return ImageStorage(uploads_dir)


@pytest.fixture()
def lifecycle(store: PostStore, storage: ImageStorage) -> ImageLifecycleManager:
    return ImageLifecycleManager(store, storage)


@pytest.fixture()
def png_upload():
    def make(filename: str = "cat.png") -> ImageUpload:
        return ImageUpload(filename=filename, content_type="image/png", data=png_bytes())

    return make
