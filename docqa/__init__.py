"""
DocQA Service

Question answering over an uploaded document workspace: line-aware retrieval
grounds answers in the user's files, and a tool-calling agent can browse,
search and edit the workspace when retrieval alone is not enough.
"""

__version__ = "1.0.0"
__description__ = "Document question answering and workspace agent service"
