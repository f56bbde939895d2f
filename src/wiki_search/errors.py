"""Error taxonomy shared by the embedding, storage, and search layers."""

from __future__ import annotations


class WikiSearchError(Exception):
    """Base class for all wiki-search failures."""


class ServiceUnavailable(WikiSearchError):
    """The embedding model service could not be reached or timed out."""


class InvalidResponse(WikiSearchError):
    """The model service answered with a malformed or wrong-sized vector."""


class StoreUnavailable(WikiSearchError):
    """The persistence layer failed."""


class NotFound(WikiSearchError):
    """A referenced page does not exist."""

    def __init__(self, entity: str, identifier: int | str | None = None) -> None:
        if identifier is None:
            message = f"{entity} not found"
        else:
            message = f"{entity} with ID {identifier} not found"
        super().__init__(message)
        self.entity = entity
        self.identifier = identifier


class BatchStateError(WikiSearchError):
    """A batch control call is not legal in the job's current state."""
