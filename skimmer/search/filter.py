"""Search queries: scoped filter grammar and fuzzy ranking.

A query is free text plus any number of scoped filters::

    go intro                  fuzzy match on the title
    feed:"tech blog"          fuzzy match on the feed name
    f:hacker t:golang         feed name or tags
    feed:the\\ rust\\ blog    escaped spaces in a bare value

Scoped filters take precedence over the title text. Results always come
back in candidate order so the list does not reshuffle as the user types.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

import structlog

from .fuzzy import Match, fuzzy_score
from ..errors import FilterGrammarError

logger = structlog.get_logger()

FEED_ALIASES = ("feedname", "feed", "f")
TAG_ALIASES = ("tag", "t")

KEY_SEPARATOR = "||"


def _complete_pattern(aliases: Tuple[str, ...]) -> re.Pattern:
    return re.compile(
        r"(?<!\S)(?:" + "|".join(aliases) + r"):"
        r'(?:"(?P<double>[^"]+)"'
        r"|'(?P<single>[^']+)'"
        r"""|(?P<bare>(?:[^\\\s"']|\\ )(?:[^\\\s]|\\ )*))"""
    )


def _incomplete_pattern(aliases: Tuple[str, ...]) -> re.Pattern:
    return re.compile(r"(?<!\S)(?:" + "|".join(aliases) + r"):(?:\"[^\"]*|'[^']*)")


FEED_PATTERN = _complete_pattern(FEED_ALIASES)
FEED_INCOMPLETE_PATTERN = _incomplete_pattern(FEED_ALIASES)
TAG_PATTERN = _complete_pattern(TAG_ALIASES)
TAG_INCOMPLETE_PATTERN = _incomplete_pattern(TAG_ALIASES)


@dataclass
class ItemProjection:
    """The parts of an item a query can see."""
    title: str
    feed_name: str = ""
    tags: List[str] = field(default_factory=list)

    @classmethod
    def from_key(cls, key: str) -> "ItemProjection":
        """Build from ``"title||feed name||tag||tag"``."""
        parts = key.split(KEY_SEPARATOR)
        return cls(
            title=parts[0],
            feed_name=parts[1] if len(parts) > 1 else "",
            tags=parts[2:],
        )


@dataclass
class FilterTerm:
    """A query split into its title text and scoped filter values."""
    title: str = " "
    feed_names: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)

    @property
    def scoped(self) -> bool:
        return bool(self.feed_names or self.tags)


def _value(match: re.Match) -> str:
    if match.group("double") is not None:
        return match.group("double")
    if match.group("single") is not None:
        return match.group("single")
    return match.group("bare").replace("\\ ", " ")


def _extract(text: str, complete: re.Pattern, incomplete: re.Pattern, strict: bool) -> Tuple[str, List[str]]:
    """Pull every complete filter out of ``text``, left to right."""
    values = []
    while True:
        match = complete.search(text)
        if match is None:
            break
        values.append(_value(match).lower())
        text = text[:match.start()] + text[match.end():]

    dangling = incomplete.search(text)
    if dangling is not None:
        if strict:
            raise FilterGrammarError(dangling.group(0))
        logger.debug("filter_fragment_discarded", fragment=dangling.group(0))
        text = text[:dangling.start()] + text[dangling.end():]

    return text, values


def parse_query(query: str, strict: bool = False) -> FilterTerm:
    """Split a query into title text and feed/tag filters.

    Filter values are lowercased. An unterminated quoted value is dropped
    from the text without producing a filter, or raises FilterGrammarError
    when ``strict`` is set. An empty title becomes a single space, which
    matches every candidate.
    """
    text, feed_names = _extract(query, FEED_PATTERN, FEED_INCOMPLETE_PATTERN, strict)
    text, tags = _extract(text, TAG_PATTERN, TAG_INCOMPLETE_PATTERN, strict)

    title = text.strip()
    return FilterTerm(title=title or " ", feed_names=feed_names, tags=tags)


def _keep_best(best: Dict[int, Match], index: int, match: Match) -> None:
    match.index = index
    current = best.get(index)
    if current is None or match.score > current.score:
        best[index] = match


def filter_items(
    query: str,
    candidates: List[ItemProjection],
    include_feed_name: bool = False,
) -> List[Match]:
    """Rank candidates against a query; results are in candidate order."""
    term = parse_query(query)
    best: Dict[int, Match] = {}

    if term.scoped:
        for value in term.feed_names:
            for index, candidate in enumerate(candidates):
                match = fuzzy_score(value, candidate.feed_name.lower())
                if match is not None:
                    _keep_best(best, index, match)

        for value in term.tags:
            for index, candidate in enumerate(candidates):
                match = fuzzy_score(value, " ".join(t.lower() for t in candidate.tags))
                if match is not None:
                    _keep_best(best, index, match)
    else:
        for index, candidate in enumerate(candidates):
            target = candidate.title
            if include_feed_name:
                target = f"{candidate.feed_name.lower()} {candidate.title}"
            match = fuzzy_score(term.title, target)
            if match is not None:
                _keep_best(best, index, match)

    return sorted(best.values(), key=lambda m: m.index)


def filter_indexes(
    query: str,
    candidates: List[ItemProjection],
    include_feed_name: bool = False,
) -> List[int]:
    """Indexes of the candidates that match, in candidate order."""
    return [m.index for m in filter_items(query, candidates, include_feed_name)]
