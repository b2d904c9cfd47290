"""
Error types for the content indexer.

- IndexerError: Base exception
- SinkError / SinkConnectionError / SchemaBootstrapError: relational store
- FeedError / FeedConnectionError / FeedSerializationError: block feed
- OperationDecodeError: one malformed operation payload

Invariants:
    - All errors inherit from IndexerError
    - Startup errors (connection, schema bootstrap) are fatal to the host
    - Per-write failures are never raised; the sink reports them as False
    - OperationDecodeError never escapes the projector
"""

from __future__ import annotations

from typing import Any


class IndexerError(Exception):
    """Base exception for all indexer errors.

    Attributes:
        message: Error message
        details: Additional error context
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class SinkError(IndexerError):
    """Relational store error."""

    pass


class SinkConnectionError(SinkError):
    """Could not open the relational store.

    Raised at startup; indexing must not proceed.
    """

    def __init__(self, message: str, database: str | None = None) -> None:
        super().__init__(message, details={"database": database})
        self.database = database


class SchemaBootstrapError(SinkError):
    """Initial table/index creation failed."""

    pass


class FeedError(IndexerError):
    """Block feed error."""

    pass


class FeedConnectionError(FeedError):
    """Connection to the block feed backend failed."""

    pass


class FeedSerializationError(FeedError):
    """A feed record is not a decodable block-applied event."""

    pass


class OperationDecodeError(IndexerError):
    """A projected operation's payload is missing fields or carries malformed ids.

    Raised per operation; the projector logs it and continues with the block.
    """

    pass
