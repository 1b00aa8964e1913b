from __future__ import annotations

from datetime import datetime
from sqlmodel import SQLModel, Field


class Post(SQLModel, table=True):
    __tablename__ = "posts"

    id: int | None = Field(default=None, primary_key=True)

    title: str = Field(nullable=False)
    content: str = Field(nullable=False)

    # public path, e.g. /uploads/1718000000000-cat.png; None = no image
    image_path: str | None = None

    created_at: datetime | None = Field(default=None, index=True)
