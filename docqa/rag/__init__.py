"""RAG (Retrieval-Augmented Generation) Engine

This package turns uploaded files into line-addressed chunks, embeds them and
serves similarity search over the in-memory index.
"""
