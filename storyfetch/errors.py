"""Tagged error kinds raised and absorbed along the resolution pipeline."""

from __future__ import annotations

from typing import Optional


class StoryFetchError(Exception):
    """Base class for every failure the pipeline reports."""

    kind = "error"

    def __init__(self, message: str = "", *, url: Optional[str] = None) -> None:
        super().__init__(message or self.kind)
        self.url = url


class MissingLink(StoryFetchError):
    kind = "missing_link"


class EmptyContent(StoryFetchError):
    kind = "empty_content"


class TransportFailure(StoryFetchError):
    kind = "transport_failure"

    def __init__(
        self,
        message: str = "",
        *,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, url=url)
        self.status_code = status_code


class Blocked(StoryFetchError):
    kind = "blocked"


class NotMeaningful(StoryFetchError):
    kind = "not_meaningful"


class SanitizerMisconfigured(StoryFetchError):
    kind = "misconfigured"


class WriteFailure(StoryFetchError):
    kind = "write_failure"


class DirectoryFailure(StoryFetchError):
    kind = "directory_failure"


class RenameFailure(StoryFetchError):
    kind = "rename_failure"
