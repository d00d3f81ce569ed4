"""Pipeline orchestration - refresh cycles."""

from .refresh import RefreshPipeline, clean_feeds, refresh_due

__all__ = ["RefreshPipeline", "clean_feeds", "refresh_due"]
