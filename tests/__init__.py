"""
Content indexer test suite.

This package contains:
- unit/: Unit tests (chain model, sink, handlers, config, in-memory feed)
- integration/: Integration tests (projector over SQLite, indexer service, replay)
"""
