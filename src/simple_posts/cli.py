from pathlib import Path

import uvicorn

from .config import Settings, setup_logging


def _lifecycle(settings: Settings):
    from .db import PostStore, create_db_engine, init_db
    from .lifecycle import ImageLifecycleManager
    from .uploads import ImageStorage

    engine = create_db_engine(settings.database_url)
    init_db(engine)
    return engine, ImageLifecycleManager(PostStore(engine), ImageStorage(settings.uploads_dir))


def seed():
    settings = Settings.from_env()
    setup_logging(settings.log_level)
    engine, lifecycle = _lifecycle(settings)
    try:
        lifecycle.create("Hello", "The very first post.")
        lifecycle.create("Weekend", "Walk by the lake.")
        lifecycle.create("Lunch", "Vegan lunch today.")
    finally:
        engine.dispose()
    print("Seeded 3 posts.")


def collect_orphans():
    settings = Settings.from_env()
    setup_logging(settings.log_level)
    engine, lifecycle = _lifecycle(settings)
    try:
        removed = lifecycle.collect_orphans(grace_seconds=settings.orphan_grace_seconds)
    finally:
        engine.dispose()
    print(f"Removed {len(removed)} orphaned upload(s).")


def start_api():
    settings = Settings.from_env()
    setup_logging(settings.log_level)

    src_dir = Path(__file__).resolve().parents[1]  # .../src
    uvicorn.run(
        "simple_posts.api:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        reload_dirs=[str(src_dir)] if settings.reload else None,
        log_config=None,
    )
