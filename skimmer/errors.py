"""Error types shared across skimmer."""


class SkimmerError(Exception):
    """Base class for all skimmer errors."""


class FetchError(SkimmerError):
    """A single feed failed to fetch or parse.

    Collected per feed by the fetcher and reported alongside the items of the
    feeds that succeeded; never raised out of ``fetch_all``.
    """

    def __init__(self, feed_url: str, message: str):
        super().__init__(f"Error fetching {feed_url}: {message}")
        self.feed_url = feed_url
        self.message = message


class NoFeedsError(SkimmerError):
    """Refresh was requested with an empty feed list."""

    def __init__(self, message: str = "no feeds configured"):
        super().__init__(message)


class StoreError(SkimmerError):
    """A store operation failed. The store remains usable."""


class NotFoundError(StoreError):
    """No item exists with the requested id."""

    def __init__(self, item_id: int):
        super().__init__(f"item {item_id} not found")
        self.item_id = item_id


class MigrationError(StoreError):
    """Schema migration failed and was rolled back."""


class FilterGrammarError(SkimmerError):
    """A scoped filter in a search query could not be parsed."""

    def __init__(self, fragment: str):
        super().__init__(f"unterminated filter value: {fragment}")
        self.fragment = fragment


class ConfigError(SkimmerError):
    """Configuration could not be loaded or is invalid."""


class FeedAlreadyExistsError(ConfigError):
    """A feed with this URL is already configured."""

    def __init__(self, url: str):
        super().__init__(f"feed already exists: {url}")
        self.url = url
