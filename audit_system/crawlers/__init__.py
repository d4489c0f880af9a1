"""Source fetching for stage 2 evidence gathering."""

from audit_system.crawlers.source_fetcher import FetchedPage, SourceFetcher

__all__ = ["FetchedPage", "SourceFetcher"]
