from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import Depends, FastAPI, File, Form, Request, Response, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from .config import Settings
from .db import PostStore, create_db_engine, init_db
from .errors import PostError
from .lifecycle import ImageLifecycleManager
from .uploads import ImageStorage, ImageUpload

logger = logging.getLogger(__name__)


class PostOut(BaseModel):
    id: int
    title: str
    content: str
    image_path: str | None = None
    created_at: datetime


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings

    engine = create_db_engine(settings.database_url)
    init_db(engine, reset=settings.reset_db_on_startup)
    logger.info("Connected to database %s", engine.url.render_as_string(hide_password=True))

    store = PostStore(engine)
    storage = ImageStorage(settings.uploads_dir)
    app.state.store = store
    app.state.storage = storage
    app.state.lifecycle = ImageLifecycleManager(store, storage)
    yield
    engine.dispose()
    logger.info("Database connection closed")


def get_store(request: Request) -> PostStore:
    return request.app.state.store


def get_lifecycle(request: Request) -> ImageLifecycleManager:
    return request.app.state.lifecycle


async def _read_upload(image: UploadFile | None) -> ImageUpload | None:
    # browsers send an empty file part when nothing was picked
    if image is None or not image.filename:
        return None
    data = await image.read()
    return ImageUpload.accept(image.filename, image.content_type, data)


async def handle_post_error(request: Request, exc: PostError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings.from_env()

    app = FastAPI(
        title="Simple Posts",
        description="CRUD REST API for posts with an optional image.",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.add_exception_handler(PostError, handle_post_error)

    # uploaded images are served as-is, URLs stay /uploads/...
    app.mount(
        "/uploads",
        StaticFiles(directory=str(settings.uploads_dir), check_dir=False),
        name="uploads",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/posts", response_model=list[PostOut], summary="List posts, newest first")
    def list_posts(store: PostStore = Depends(get_store)):
        return store.list()

    @app.get("/posts/{post_id}", response_model=PostOut, summary="Get post by ID")
    def get_post(post_id: int, store: PostStore = Depends(get_store)):
        return store.get(post_id)

    @app.post("/posts", response_model=PostOut, status_code=201, summary="Create a new post")
    async def create_post(
        title: str | None = Form(None),
        content: str | None = Form(None),
        image: UploadFile | None = File(None),
        lifecycle: ImageLifecycleManager = Depends(get_lifecycle),
    ):
        upload = await _read_upload(image)
        return await run_in_threadpool(lifecycle.create, title, content, upload)

    @app.put("/posts/{post_id}", response_model=PostOut, summary="Update a post")
    async def update_post(
        post_id: int,
        title: str | None = Form(None),
        content: str | None = Form(None),
        image: UploadFile | None = File(None),
        lifecycle: ImageLifecycleManager = Depends(get_lifecycle),
    ):
        """
        Title and content are always overwritten. The image is replaced only
        when a new one is sent, and then the old file is deleted.
        """
        upload = await _read_upload(image)
        return await run_in_threadpool(lifecycle.update, post_id, title, content, upload)

    @app.delete("/posts/{post_id}", status_code=204, summary="Delete post by ID")
    def delete_post(post_id: int, lifecycle: ImageLifecycleManager = Depends(get_lifecycle)):
        lifecycle.delete(post_id)
        return Response(status_code=204)

    return app


app = create_app()
