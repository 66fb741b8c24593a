"""
Intent Classification

Phrase-pattern heuristics that decide which prompt mode a question needs:
workspace listing questions, article drafting requests, and references to
specific documents by name.
"""

from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Iterable, List, Optional, Sequence
import re

TIMESTAMP_PREFIX = re.compile(r"^\d+-(.+)$")

META_QUESTION_PATTERNS = (
    r"what (files|documents|files and folders) (do i have|are in|are there)",
    r"list (all )?(my )?(files|documents|files and folders)",
    r"show me (all )?(my )?(files|documents|files and folders)",
    r"what'?s in (my )?(workspace|folder|directory)",
    r"(list|show|what) (all )?files",
)

DRAFTING_PATTERNS = (
    r"create (an? )?(article|paper|document|latex|tex) (about|on|for)",
    r"(i want|i need|can you) (to )?create (an? )?(article|paper|document|latex|tex)",
    r"write (an? )?(article|paper|document) (about|on)",
    r"generate (an? )?(article|paper|document|latex|tex) (about|on)",
    r"make (an? )?(article|paper|document|latex|tex) (about|on)",
)


def strip_timestamp_prefix(filename: str) -> str:
    """Drop the ``<epoch-ms>-`` prefix uploads are stored with."""
    match = TIMESTAMP_PREFIX.match(filename)
    return match.group(1) if match else filename


@dataclass(frozen=True)
class Intent:
    """What a message asks for, as far as routing is concerned."""
    is_meta_question: bool = False
    is_drafting: bool = False


class IntentClassifier:
    """Regex-based message classifier."""

    def __init__(
        self,
        meta_patterns: Sequence[str] = META_QUESTION_PATTERNS,
        drafting_patterns: Sequence[str] = DRAFTING_PATTERNS
    ):
        self._meta = [re.compile(p, re.IGNORECASE) for p in meta_patterns]
        self._drafting = [re.compile(p, re.IGNORECASE) for p in drafting_patterns]

    def is_meta_question(self, message: str) -> bool:
        return any(p.search(message) for p in self._meta)

    def is_drafting_request(self, message: str) -> bool:
        return any(p.search(message) for p in self._drafting)

    def classify(self, message: str) -> Intent:
        return Intent(
            is_meta_question=self.is_meta_question(message),
            is_drafting=self.is_drafting_request(message),
        )

    def mentioned_documents(
        self,
        message: str,
        known_filenames: Iterable[str],
        active_document: Optional[str] = None
    ) -> List[str]:
        """
        Known documents the message names, other than the active one.

        A document counts as named when its stored filename, its name without
        the upload timestamp prefix, or that name without extension appears in
        the message.

        Args:
            message: User message
            known_filenames: Stored filenames of indexed documents
            active_document: Filename already in focus, never reported

        Returns:
            Stored filenames in first-seen order
        """
        text = message.lower()
        found = []
        for filename in known_filenames:
            if filename == active_document or filename in found:
                continue
            display = strip_timestamp_prefix(filename)
            stem = PurePosixPath(display).stem
            for variant in {filename, display, stem}:
                if len(variant) < 3:
                    continue
                pattern = r"(?<![\w.-])" + re.escape(variant.lower()) + r"(?![\w-])"
                if re.search(pattern, text):
                    found.append(filename)
                    break
        return found
