"""
Search indexing and query engine package.

This package provides a pure-Python mail search stack:
- analyzers: Tokenizers and filters (lowercase, stop, stemming)
- schema: Positional field layout of indexed messages
- models: Analyzed documents and postings
- session: Write session of staged upserts and removals
- snapshot: Immutable read snapshots with structural sharing
- stats: BM25/BM25F scoring statistics
- bm25_engine: Query scoring engine
- storage: SQLite and JSON document stores
- lockfile: Single-owner lock for an index directory
"""
