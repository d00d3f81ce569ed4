"""Subsequence fuzzy matching with positional scoring."""

from dataclasses import dataclass, field
from typing import List, Optional

from rapidfuzz.distance import LCSseq

SEPARATORS = "/-_ .\\"

FIRST_CHAR_MATCH_BONUS = 10
MATCH_FOLLOWING_SEPARATOR_BONUS = 20
CAMEL_CASE_MATCH_BONUS = 20
ADJACENT_MATCH_BONUS = 5
UNMATCHED_LEADING_CHAR_PENALTY = -5
MAX_UNMATCHED_LEADING_CHAR_PENALTY = -15


@dataclass
class Match:
    """A candidate that contains the pattern as a subsequence."""
    index: int
    score: int
    matched_indexes: List[int] = field(default_factory=list)


def _fold(text: str) -> str:
    # length-preserving, so positions index the unfolded text
    return "".join(ch.lower()[0] for ch in text)


def _aligned_positions(pattern: str, target: str) -> List[int]:
    """Target positions of the longest common subsequence, ignoring case."""
    blocks = LCSseq.editops(_fold(pattern), _fold(target)).as_matching_blocks()
    return [block.b + offset for block in blocks for offset in range(block.size)]


def fuzzy_score(pattern: str, target: str) -> Optional[Match]:
    """Score ``target`` against ``pattern``; None when it does not match.

    Every pattern character must appear in the target in order, ignoring
    case. A whitespace-only pattern matches everything with score 0.
    The returned Match has index -1; callers fill in the candidate index.
    """
    if not pattern.strip():
        return Match(index=-1, score=0)

    matched = _aligned_positions(pattern, target)
    if len(matched) < len(pattern):
        return None

    score = 0
    previous = None
    for position in matched:
        if position == 0:
            score += FIRST_CHAR_MATCH_BONUS
        elif target[position - 1] in SEPARATORS:
            score += MATCH_FOLLOWING_SEPARATOR_BONUS
        elif target[position].isupper() and target[position - 1].islower():
            score += CAMEL_CASE_MATCH_BONUS

        if previous is not None and previous == position - 1:
            score += ADJACENT_MATCH_BONUS
        previous = position

    score += max(matched[0] * UNMATCHED_LEADING_CHAR_PENALTY, MAX_UNMATCHED_LEADING_CHAR_PENALTY)
    score -= len(target) - len(matched)
    return Match(index=-1, score=score, matched_indexes=matched)

