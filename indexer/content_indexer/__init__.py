"""
Content Indexer - relational projection of on-chain content cards and permissions.

This package observes blocks as consensus finalizes them and projects
encrypted content card records and their permission records into SQLite
tables that applications query without replaying the chain.

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌─────────────────┐
    │ Block Feed  │────▶│    Block    │────▶│   Operation     │
    │(Kafka/mem)  │     │  Projector  │     │    Router       │
    └─────────────┘     └─────────────┘     └────────┬────────┘
                                                     │
                              ┌──────────────────────┼───────────────┐
                              ▼                      ▼               ▼
                       ┌─────────────┐      ┌──────────────┐  ┌────────────┐
                       │  Resolver   │      │ Content card │  │ Permission │
                       │ (new ids)   │      │   handler    │  │  handler   │
                       └─────────────┘      └──────┬───────┘  └─────┬──────┘
                                                   ▼                ▼
                                            ┌──────────────────────────┐
                                            │  Relational Sink (SQLite)│
                                            └──────────────────────────┘

Invariants:
    - The chain is the source of truth; the tables are a derived view
    - Operations are projected strictly in apply order
    - Rows are soft-deleted, never physically removed
    - Unknown operation kinds are skipped, never fatal

How to change safely:
    - operation_type codes are persisted; never renumber them
    - Add columns, never rename or drop them
"""

from ._version import __version__

__all__ = ["__version__"]
