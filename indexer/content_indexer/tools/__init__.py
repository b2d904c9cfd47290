"""
Operational tools for the content indexer.

- replay: project a JSON-lines dump of block-applied events
"""
