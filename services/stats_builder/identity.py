"""
Identity Assigner

Maps each distinct author to a short, stable, human-readable id used in file
names and on the dashboard.
"""

import logging
import string
from typing import Dict, Iterable, List, NamedTuple

from shared.models import AuthorIdentity, AuthorSummary

logger = logging.getLogger(__name__)

MAX_PREFIX_LENGTH = 10
FALLBACK_PREFIX = "a"

_ASCII_LETTERS = frozenset(string.ascii_letters)


class AuthorRef(NamedTuple):
    """Minimal author description needed to assign an id."""

    author_key: str
    display_name: str
    first_event_order: int


def short_id_prefix(display_name: str) -> str:
    """First ten ASCII letters of the name, lower-cased, or ``"a"``."""
    letters = [ch.lower() for ch in display_name if ch in _ASCII_LETTERS]
    prefix = "".join(letters[:MAX_PREFIX_LENGTH])
    return prefix or FALLBACK_PREFIX


class IdentityAssigner:
    """
    Assigns run-scoped short ids to authors.

    Authors are processed in order of their first post; the first author to
    claim a prefix keeps it unsuffixed and later collisions get ``2``, ``3``
    and so on appended.
    """

    def __init__(self) -> None:
        self.short_ids: Dict[str, str] = {}  # author_key -> short_id
        self.display_names: Dict[str, str] = {}  # short_id -> display_name

    def assign(self, authors: Iterable[AuthorRef]) -> Dict[str, str]:
        """
        Assign ids to every author.

        Args:
            authors: Author references in any order

        Returns:
            Mapping of author key to short id
        """
        ordered = sorted(authors, key=lambda a: (a.first_event_order, a.author_key))
        for author in ordered:
            if author.author_key in self.short_ids:
                continue
            prefix = short_id_prefix(author.display_name)
            candidate = prefix
            suffix = 2
            while candidate in self.display_names:
                candidate = f"{prefix}{suffix}"
                suffix += 1
            self.display_names[candidate] = author.display_name
            self.short_ids[author.author_key] = candidate

        logger.info(f"Assigned short ids to {len(self.short_ids)} authors")
        return dict(self.short_ids)

    def assign_summaries(self, summaries: Iterable[AuthorSummary]) -> List[AuthorIdentity]:
        """Assign ids to source author summaries, ordered by first post id."""
        summaries = list(summaries)
        self.assign(
            AuthorRef(s.author_key, s.display_name, s.first_post_id) for s in summaries
        )
        return [
            AuthorIdentity(s.author_key, s.display_name, self.short_ids[s.author_key])
            for s in sorted(summaries, key=lambda s: (s.first_post_id, s.author_key))
        ]

    def short_id_for(self, author_key: str) -> str:
        try:
            return self.short_ids[author_key]
        except KeyError:
            raise KeyError(f"No short id assigned for author {author_key!r}") from None
