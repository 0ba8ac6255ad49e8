"""Lexical near-duplicate counting within one analysis batch."""
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

from config import config
from schemas import FeedbackRecord


def tokenize(title: str, body: str = "", min_length: Optional[int] = None) -> FrozenSet[str]:
    """Whitespace tokens of the lower-cased text longer than min_length characters."""
    if min_length is None:
        min_length = config.SIMILARITY_MIN_TOKEN_LENGTH
    text = f"{title} {body or ''}".lower()
    return frozenset(word for word in text.split() if len(word) > min_length)


class SimilarityIndex:
    """Similar-sibling counts for a batch of feedback records.

    Built once per analysis run, before any item is scored, and read by
    position or by record id. Two records are similar when their token sets
    share at least ``min_shared`` tokens.
    """

    def __init__(self, ids: Sequence[str], counts: Sequence[int]):
        self._counts: Tuple[int, ...] = tuple(counts)
        self._by_id: Dict[str, int] = dict(zip(ids, self._counts))

    @classmethod
    def build(
        cls,
        records: Sequence[FeedbackRecord],
        min_shared: Optional[int] = None,
        min_length: Optional[int] = None
    ) -> "SimilarityIndex":
        if min_shared is None:
            min_shared = config.SIMILARITY_MIN_SHARED_TOKENS

        token_sets: List[FrozenSet[str]] = [
            tokenize(record.title, record.body, min_length) for record in records
        ]

        counts = []
        for i, tokens in enumerate(token_sets):
            similar = 0
            for j, other in enumerate(token_sets):
                if i == j:
                    continue
                if len(tokens & other) >= min_shared:
                    similar += 1
            counts.append(similar)

        return cls([record.id for record in records], counts)

    def __len__(self) -> int:
        return len(self._counts)

    def count_at(self, index: int) -> int:
        return self._counts[index]

    def count_for(self, record_id: str) -> int:
        return self._by_id.get(record_id, 0)
