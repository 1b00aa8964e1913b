import uvicorn

from .config import Settings, setup_logging


def main():
    settings = Settings.from_env()
    setup_logging(settings.log_level)
    uvicorn.run("simple_posts.api:app", host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
