"""
Content Processors Package

Services that turn extracted article text into searchable vectors.

Modules:
--------
- chunker: Document / paragraph / sentence chunking
- embedder: Embedding generation using sentence-transformers
- embedding_processor: At-most-once chunk-and-embed driver per article
"""
