"""Unit tests for the search filter grammar and fuzzy ranking."""

import pytest

from skimmer.errors import FilterGrammarError
from skimmer.search.filter import ItemProjection, filter_indexes, filter_items, parse_query
from skimmer.search.fuzzy import fuzzy_score

ITEMS = [
    ItemProjection.from_key(key) for key in [
        "Introduction to Golang||tech blog||programming||golang",
        "Python tutorial||dev blog||programming||python",
        "Breaking news||hacker news||world news||important",
        "JavaScript framework||web blog||javascript||frontend",
        "Guide to Rust||the rust blog||programming||rust",
        "Advanced Go topics||tech blog||programming||golang||advanced",
    ]
]


class TestFuzzyScore:
    """Tests for the subsequence scorer."""

    def test_subsequence_matches(self):
        """Pattern characters must appear in order."""
        assert fuzzy_score("gln", "golang") is not None
        assert fuzzy_score("nl", "golang") is None

    def test_case_insensitive(self):
        """Should ignore case."""
        match = fuzzy_score("GO", "golang")
        assert match is not None
        assert match.matched_indexes == [0, 1]

    def test_whitespace_pattern_matches_everything(self):
        """A blank pattern matches with a neutral score."""
        assert fuzzy_score(" ", "anything").score == 0
        assert fuzzy_score(" ", "").score == 0

    def test_prefix_scores_higher_than_inner_match(self):
        """Matches at the start beat matches deep in the string."""
        start = fuzzy_score("go", "golang tips")
        inner = fuzzy_score("go", "tips for golang")
        assert start.score > inner.score


class TestParseQuery:
    """Tests for splitting a query into title and scoped filters."""

    def test_plain_text(self):
        """Text without filters is the title."""
        term = parse_query("  go intro  ")
        assert term.title == "go intro"
        assert not term.scoped

    def test_filters_are_lowercased_and_removed(self):
        """Filter values should be lowercased and stripped from the title."""
        term = parse_query('intro feed:"Tech Blog" t:GoLang')
        assert term.title == "intro"
        assert term.feed_names == ["tech blog"]
        assert term.tags == ["golang"]

    def test_every_alias(self):
        """All aliases should be recognised."""
        term = parse_query("feedname:a feed:b f:c tag:d t:e")
        assert term.feed_names == ["a", "b", "c"]
        assert term.tags == ["d", "e"]
        assert term.title == " "

    def test_escaped_spaces(self):
        """Backslash-escaped spaces stay inside a bare value."""
        term = parse_query(r"feed:the\ rust\ blog")
        assert term.feed_names == ["the rust blog"]

    def test_alias_inside_word_is_text(self):
        """A filter must start a word."""
        term = parse_query("self:hosted")
        assert term.feed_names == []
        assert term.title == "self:hosted"

    def test_unterminated_quote_is_discarded(self):
        """A dangling quoted filter disappears without becoming a filter."""
        term = parse_query('golang feed:"tech')
        assert term.feed_names == []
        assert term.title == "golang"

    def test_unterminated_quote_strict(self):
        """Strict parsing reports the dangling fragment."""
        with pytest.raises(FilterGrammarError):
            parse_query("tag:'world", strict=True)

    def test_empty_query(self):
        """An empty query leaves a single-space title."""
        assert parse_query("").title == " "


class TestFilterTitle:
    """Tests for title matching."""

    @pytest.mark.parametrize("query,expected", [
        ("golang", [0]),
        ("intro", [0]),
        ("Go", [0, 4, 5]),
        ("nonexistent", []),
    ])
    def test_simple_text_search(self, query, expected):
        """Should fuzzy match on titles."""
        assert filter_indexes(query, ITEMS) == expected

    def test_empty_query_matches_all(self):
        """An empty query keeps every candidate."""
        assert filter_indexes("", ITEMS) == list(range(len(ITEMS)))

    def test_feed_name_included_when_enabled(self):
        """include_feed_name should make feed names searchable."""
        assert filter_indexes("hacker", ITEMS, include_feed_name=True) == [2]

    def test_feed_name_excluded_by_default(self):
        """Feed names are not searched without the flag."""
        assert filter_indexes("hacker", ITEMS) == []

    def test_results_keep_candidate_order(self):
        """Results come back by index, not by score."""
        candidates = [
            ItemProjection.from_key("Go intro||tech"),
            ItemProjection.from_key("Rust guide||tech"),
            ItemProjection.from_key("Python||dev"),
        ]
        matches = filter_items("feed:tech", candidates)
        assert [m.index for m in matches] == [0, 1]


class TestFilterFeedName:
    """Tests for feed name filters."""

    @pytest.mark.parametrize("query,expected", [
        ("feed:tech", [0, 5]),
        ("feedname:dev", [1]),
        ("f:hacker", [2]),
        ('feed:"web blog"', [3]),
        ("feed:'hacker news'", [2]),
        ('feed:"tech blog"', [0, 5]),
        (r"feed:the\ rust\ blog", [4]),
        ("feed:nonexistent", []),
    ])
    def test_feed_filters(self, query, expected):
        """Should match against the feed name."""
        assert filter_indexes(query, ITEMS) == expected

    def test_quote_styles_are_equivalent(self):
        """Single, double and escaped forms select the same items."""
        double = filter_indexes('feed:"the rust blog"', ITEMS)
        single = filter_indexes("feed:'the rust blog'", ITEMS)
        escaped = filter_indexes(r"feed:the\ rust\ blog", ITEMS)
        assert double == single == escaped == [4]

    def test_filter_overrides_title(self):
        """With a scoped filter the title text is not matched."""
        assert filter_indexes("nonexistent feed:dev", ITEMS) == [1]


class TestFilterTags:
    """Tests for tag filters."""

    @pytest.mark.parametrize("query,expected", [
        ("tag:programming", [0, 1, 4, 5]),
        ("t:golang", [0, 5]),
        ('tag:"world news"', [2]),
        ("tag:'world news'", [2]),
        ("tag:backend", []),
    ])
    def test_tag_filters(self, query, expected):
        """Should match against the joined tags."""
        assert filter_indexes(query, ITEMS) == expected

    def test_feed_and_tag_filters_union(self):
        """Feed and tag filters each contribute matches."""
        assert filter_indexes("f:dev t:rust", ITEMS) == [1, 4]
