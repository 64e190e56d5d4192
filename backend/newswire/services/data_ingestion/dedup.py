"""
Fingerprinting and duplicate removal for one fetch batch.

Two passes over the batch, both keeping arrival order:
1. Exact: identical fingerprints (MD5 of title + URL) keep the first seen.
2. Near: a title more than ``threshold`` similar to any already
   accepted title is dropped. First accepted wins; nothing is merged.
"""

import hashlib
import re
from dataclasses import dataclass, field
from difflib import SequenceMatcher
import logging

from newswire.models.domain import Article

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.8


def compute_exact_key(title: str, url: str) -> str:
    """Deterministic fingerprint of an article's title and URL."""
    return hashlib.md5(f"{title}{url}".encode("utf-8")).hexdigest()


def normalize_title(title: str) -> str:
    """Normalize title for fuzzy matching."""
    # Lowercase
    title = title.lower()

    # Remove punctuation
    title = re.sub(r"[^\w\s]", " ", title)

    # Normalize whitespace
    return " ".join(title.split())


def title_similarity(a: str, b: str) -> float:
    """Case-insensitive similarity of two titles on a 0-1 scale."""
    return SequenceMatcher(None, normalize_title(a), normalize_title(b)).ratio()


@dataclass
class DedupResult:
    """Survivors of one dedup pass plus what was dropped and why."""
    articles: list[Article] = field(default_factory=list)
    exact_duplicates: int = 0
    near_duplicates: int = 0


class DedupEngine:
    """
    Stateless duplicate filter for a single batch.

    Only compares items within the batch; uniqueness against stored
    articles is enforced by the store on insert.
    """

    def __init__(self, threshold: float = DEFAULT_SIMILARITY_THRESHOLD):
        self.threshold = threshold

    def deduplicate(self, articles: list[Article]) -> DedupResult:
        result = DedupResult()

        # First pass: exact fingerprints
        seen_keys: set[str] = set()
        unique: list[Article] = []
        for article in articles:
            key = article.exact_key or compute_exact_key(article.title, article.url)
            if key in seen_keys:
                result.exact_duplicates += 1
                continue
            seen_keys.add(key)
            unique.append(article.model_copy(update={"exact_key": key}))

        # Second pass: fuzzy title matching against accepted items
        title_index: list[tuple[str, Article]] = []
        for article in unique:
            normalized = normalize_title(article.title)
            match = next(
                (
                    accepted for accepted_title, accepted in title_index
                    if SequenceMatcher(None, normalized, accepted_title).ratio() > self.threshold
                ),
                None,
            )
            if match is not None:
                result.near_duplicates += 1
                logger.debug(f'Near duplicate: "{article.title}" similar to "{match.title}"')
                continue
            title_index.append((normalized, article))
            result.articles.append(article)

        logger.info(
            f"Dedup: {len(articles)} in, {len(result.articles)} out "
            f"(exact={result.exact_duplicates}, near={result.near_duplicates})"
        )
        return result
