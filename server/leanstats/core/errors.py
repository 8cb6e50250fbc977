"""Error taxonomy shared by the core and the API layer."""

from __future__ import annotations


class ValidationError(Exception):
    """A hit payload field is missing or malformed. Maps to HTTP 400."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class InvalidPagePath(ValidationError):
    def __init__(self) -> None:
        super().__init__("invalid_page_path", "Invalid page path.")


class InvalidPostId(ValidationError):
    def __init__(self) -> None:
        super().__init__("invalid_post_id", "Invalid post id.")


class InvalidDeviceClass(ValidationError):
    def __init__(self) -> None:
        super().__init__("invalid_device_class", "Invalid device class.")


class InvalidTimestampBucket(ValidationError):
    def __init__(self) -> None:
        super().__init__("invalid_timestamp_bucket", "Invalid timestamp bucket.")


class StorageFailure(Exception):
    """A storage read or write failed."""


class AccessDenied(Exception):
    """Caller may not use an admin endpoint. Maps to HTTP 403."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
