"""Stage 2: independent evidence gathering.

Pipeline per run:
1. Source discovery (inference): 3-5 independent URLs, filtered for
   affiliate / listicle noise and deduplicated by domain then URL
2. Sequential fetch of each source through SourceFetcher
3. Deterministic fragment extraction: measurement-like sentences
4. Corroboration across all sources

Too few sources or pages is insufficient signal, reported as a validation
failure so the stage is not retried blindly.
"""

import re
from typing import Any, Callable, Optional
from urllib.parse import urlparse

from audit_system.config.prompts import (
    SOURCE_DISCOVERY_PROMPT,
    SOURCE_DISCOVERY_TEMPERATURE,
    format_lines,
)
from audit_system.config.settings import Settings
from audit_system.crawlers.source_fetcher import FetchedPage, SourceFetcher
from audit_system.data_management.schemas import (
    ClaimFragment,
    EvidenceOutput,
    Product,
    SourceRef,
    StageId,
)
from audit_system.errors import ValidationFailure
from audit_system.executors.base_executor import (
    BaseStageExecutor,
    StageInputs,
    ValidationOutcome,
)
from audit_system.executors.validators import validate_evidence
from audit_system.llm.gemini_client import GeminiClient
from audit_system.sifters.evidence_corroborator import EvidenceCorroborator

BAD_URL_MARKERS = (
    "amazon.", "utm_", "ref=", "click", "coupon",
    "best-", "/best", "top-", "/top",
)

SIGNAL_WORDS = (
    "wh", "watt", "watts", "mah", "cycle", "cycles",
    "db", "decibel", "lbs", "kg", "amp", "amps",
    "voltage", "v", "ac", "dc", "solar", "charging",
    "inverter", "surge", "capacity", "runtime", "hours",
)

MIN_SENTENCE_LENGTH = 40
MAX_SENTENCE_LENGTH = 220
MAX_FRAGMENTS_PER_PAGE = 18

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]\s+")
_DIGIT_RE = re.compile(r"\d")


def looks_bad(url: str) -> bool:
    """Affiliate, tracking or listicle URL."""
    lowered = url.lower()
    return any(marker in lowered for marker in BAD_URL_MARKERS)


def domain_of(url: str) -> str:
    host = urlparse(url).hostname or ""
    return host[4:] if host.startswith("www.") else host


def _unique_by(items: list[SourceRef], key: Callable[[SourceRef], str]) -> list[SourceRef]:
    seen: set[str] = set()
    unique: list[SourceRef] = []
    for item in items:
        k = key(item)
        if k in seen:
            continue
        seen.add(k)
        unique.append(item)
    return unique


def clean_sources(raw: Any, max_sources: int) -> list[SourceRef]:
    """
    Filter a discovery response down to usable sources.

    Drops non-http and noisy URLs, dedupes by domain then by URL, and caps
    the result.
    """
    entries = raw.get("sources") if isinstance(raw, dict) else None
    if not isinstance(entries, list):
        return []

    cleaned: list[SourceRef] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        url = str(entry.get("url") or "").strip()
        if not url.startswith("http") or looks_bad(url):
            continue
        source_type = entry.get("type")
        cleaned.append(SourceRef(url=url, source_type=str(source_type) if source_type else None))

    by_domain = _unique_by(cleaned, lambda s: domain_of(s.url))
    return _unique_by(by_domain, lambda s: s.url)[:max_sources]


def extract_fragments(text: str, source_url: str) -> list[ClaimFragment]:
    """
    Pull measurement-like sentences out of page text.

    Keeps sentences of 40-220 characters that contain a digit and one of the
    measurement signal words, at most 18 per page.
    """
    fragments: list[ClaimFragment] = []
    for sentence in _SENTENCE_SPLIT_RE.split(text or ""):
        sentence = sentence.strip()
        if not MIN_SENTENCE_LENGTH <= len(sentence) <= MAX_SENTENCE_LENGTH:
            continue
        lowered = sentence.lower()
        if not _DIGIT_RE.search(lowered):
            continue
        if not any(word in lowered for word in SIGNAL_WORDS):
            continue
        fragments.append(ClaimFragment(source_url=source_url, claim=sentence))
        if len(fragments) >= MAX_FRAGMENTS_PER_PAGE:
            break
    return fragments


def claim_lines(profile: Optional[dict[str, Any]]) -> list[str]:
    rows = (profile or {}).get("claim_profile") or []
    return [f"{row.get('label')}: {row.get('value')}" for row in rows if isinstance(row, dict)]


class EvidenceDiscoveryExecutor(BaseStageExecutor):
    """
    Stage 2 executor.

    Attributes:
        client: Inference client used for source discovery
        fetcher: Source page fetcher
        corroborator: Fragment corroborator
    """

    stage_id = StageId.EVIDENCE

    def __init__(
        self,
        client: GeminiClient,
        fetcher: SourceFetcher,
        settings: Settings,
        corroborator: Optional[EvidenceCorroborator] = None,
    ):
        super().__init__()
        self.client = client
        self.fetcher = fetcher
        self.corroborator = corroborator or EvidenceCorroborator.from_settings(settings)
        self.min_sources = settings.discovery_min_sources
        self.max_sources = settings.discovery_max_sources
        self.min_pages = settings.fetch_min_pages
        self.min_claims = settings.evidence_min_claims
        self.min_evidence_sources = settings.evidence_min_sources

    async def discover_sources(self, product: Product, profile: Optional[dict[str, Any]]) -> list[SourceRef]:
        prompt = SOURCE_DISCOVERY_PROMPT.format(
            product_name=product.display_name,
            category=product.category or "unknown category",
            claim_lines=format_lines(claim_lines(profile)[:10]),
        )
        raw = await self.client.generate_json(
            prompt,
            temperature=SOURCE_DISCOVERY_TEMPERATURE,
            max_output_tokens=800,
        )
        return clean_sources(raw, self.max_sources)

    async def fetch_pages(self, sources: list[SourceRef]) -> list[FetchedPage]:
        """Fetch sources one at a time to bound external concurrency."""
        pages: list[FetchedPage] = []
        for source in sources:
            page = await self.fetcher.fetch(source.url)
            if page is not None:
                pages.append(page)
        return pages

    async def execute(self, product: Product, inputs: StageInputs) -> dict[str, Any]:
        sources = await self.discover_sources(product, inputs.get(StageId.CLAIM_PROFILE))
        if len(sources) < self.min_sources:
            raise ValidationFailure(
                "insufficient_signal",
                f"{len(sources)} usable sources discovered, need {self.min_sources}",
            )

        pages = await self.fetch_pages(sources)
        if len(pages) < self.min_pages:
            raise ValidationFailure(
                "insufficient_signal",
                f"{len(pages)} of {len(sources)} sources fetched, need {self.min_pages}",
            )

        fragments: list[ClaimFragment] = []
        for page in pages:
            fragments.extend(extract_fragments(page.text, page.url))

        result = self.corroborator.normalize(fragments)

        self.logger.info(
            f"Gathered {result.claim_count} corroborated claims from {result.source_count} sources",
            product_id=product.product_id,
            fragments=len(fragments),
            fetched=len(pages),
        )

        return EvidenceOutput(
            sources=sources,
            fetched_count=len(pages),
            source_count=result.source_count,
            claim_count=result.claim_count,
            claims=result.claims,
        ).model_dump(mode="json")

    def validate(self, raw: Any) -> ValidationOutcome:
        return validate_evidence(raw, self.min_claims, self.min_evidence_sources)
