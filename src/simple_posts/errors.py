from __future__ import annotations


class PostError(Exception):
    """Base class for everything the posts service raises on purpose."""

    status_code = 500


class ValidationError(PostError):
    status_code = 400

    def __init__(self, message: str = "Title and content are required"):
        super().__init__(message)


class UnsupportedImage(ValidationError):
    def __init__(self, message: str = "Only image files are allowed!"):
        super().__init__(message)


class NotFound(PostError):
    status_code = 404

    def __init__(self, message: str = "Post not found"):
        super().__init__(message)


class StorageUnavailable(PostError):
    """The database could not be reached or rejected the statement."""

    status_code = 500
