"""Tests for SourceFetcher using an httpx mock transport."""

import httpx
import pytest

from audit_system.config.settings import Settings
from audit_system.crawlers.source_fetcher import SourceFetcher

PARAGRAPH = (
    "We ran the Acme X1000 through a full discharge test and measured 870 Wh of "
    "usable capacity, which is about 87 percent of the rated figure. "
)
ARTICLE_HTML = (
    "<html><head><title>Acme X1000 review</title><script>var x = 1;</script></head>"
    "<body><nav>Home | Reviews</nav><article><h1>Acme X1000 review</h1>"
    + "".join(f"<p>{PARAGRAPH}</p>" for _ in range(6))
    + "</article><footer>Copyright</footer></body></html>"
)


def make_fetcher(handler, **overrides) -> SourceFetcher:
    settings = Settings(_env_file=None, fetch_min_chars=100, **overrides)
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SourceFetcher(settings, client=client)


# ── Fetch Tests ───────────────────────────────────────────────────────────


class TestFetch:
    @pytest.mark.asyncio
    async def test_html_page(self) -> None:
        fetcher = make_fetcher(lambda request: httpx.Response(200, html=ARTICLE_HTML))

        page = await fetcher.fetch("https://reviews.example/acme")

        assert page is not None
        assert page.url == "https://reviews.example/acme"
        assert page.content_type == "text/html"
        assert "870 Wh" in page.text
        assert "var x" not in page.text
        await fetcher.close()

    @pytest.mark.asyncio
    async def test_truncates_to_max_chars(self) -> None:
        fetcher = make_fetcher(
            lambda request: httpx.Response(200, html=ARTICLE_HTML),
            fetch_max_chars=120,
        )
        page = await fetcher.fetch("https://reviews.example/acme")

        assert page is not None
        assert len(page.text) == 120
        await fetcher.close()

    @pytest.mark.asyncio
    async def test_non_markup_rejected(self) -> None:
        fetcher = make_fetcher(
            lambda request: httpx.Response(
                200, content=b"%PDF-1.7", headers={"content-type": "application/pdf"}
            )
        )
        assert await fetcher.fetch("https://reviews.example/manual.pdf") is None
        await fetcher.close()

    @pytest.mark.asyncio
    async def test_http_error_returns_none(self) -> None:
        fetcher = make_fetcher(lambda request: httpx.Response(404, html="<p>gone</p>"))
        assert await fetcher.fetch("https://reviews.example/missing") is None
        assert fetcher.fetch_count == 1
        await fetcher.close()

    @pytest.mark.asyncio
    async def test_transport_error_returns_none(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        fetcher = make_fetcher(handler)
        assert await fetcher.fetch("https://down.example/") is None
        await fetcher.close()

    @pytest.mark.asyncio
    async def test_too_little_text(self) -> None:
        fetcher = make_fetcher(lambda request: httpx.Response(200, html="<p>Hi</p>"))
        assert await fetcher.fetch("https://thin.example/") is None
        await fetcher.close()


# ── Extraction Tests ──────────────────────────────────────────────────────


class TestExtractText:
    def test_strips_page_chrome(self) -> None:
        fetcher = SourceFetcher(Settings(_env_file=None, fetch_min_chars=100))

        text = fetcher.extract_text(ARTICLE_HTML)

        assert text is not None
        assert "usable capacity" in text
        assert "var x = 1" not in text

    def test_short_document(self) -> None:
        fetcher = SourceFetcher(Settings(_env_file=None, fetch_min_chars=100))
        assert fetcher.extract_text("<html><body><p>Too short.</p></body></html>") is None
