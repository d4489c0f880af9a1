"""Evidence corroborator: claim fragments -> deduplicated, frequency-ranked claims.

Fragments from every source of a run are grouped by a canonical claim key.
A key survives only if at least two fragments contributed to it, which is
the corroboration requirement: a claim seen once is an anecdote.

Pure and order-independent. The same multiset of fragments always yields
the same result:
- Groups sort by count descending, then key ascending
- Citations are the sorted distinct source URLs of the group
- Samples are the first two distinct raw phrasings in sorted order

Usage:
    corroborator = EvidenceCorroborator()
    result = corroborator.normalize(fragments)
    for claim in result.claims:
        print(claim.claim_key, claim.frequency, claim.citations)
"""

import re
from dataclasses import dataclass, field
from typing import Iterable

from audit_system.config.settings import Settings
from audit_system.data_management.schemas import (
    ClaimFragment,
    CorroboratedClaim,
    CorroborationResult,
)

DEFAULT_MIN_COUNT = 2
DEFAULT_MAX_CLAIMS = 25
DEFAULT_KEY_MAX_LENGTH = 180
MAX_SAMPLES = 2

_WHITESPACE_RE = re.compile(r"\s+")
_KEY_STRIP_RE = re.compile(r"[^\w\s%°\-./]", re.ASCII)


def canonicalize_claim(text: str, max_length: int = DEFAULT_KEY_MAX_LENGTH) -> str:
    """
    Canonical grouping key for a claim.

    Lower-cases, collapses whitespace, strips everything but word characters,
    space, percent, degree, hyphen, dot and slash, trims, then truncates.

    Example:
        >>> canonicalize_claim("  Runtime:  ~10 HOURS (tested)! ")
        'runtime 10 hours tested'
    """
    key = _WHITESPACE_RE.sub(" ", (text or "").lower())
    key = _KEY_STRIP_RE.sub("", key).strip()
    return key[:max_length]


@dataclass
class _ClaimGroup:
    key: str
    count: int = 0
    citations: set[str] = field(default_factory=set)
    phrasings: set[str] = field(default_factory=set)

    def to_claim(self) -> CorroboratedClaim:
        return CorroboratedClaim(
            claim_key=self.key,
            frequency=self.count,
            citations=sorted(self.citations),
            samples=sorted(self.phrasings)[:MAX_SAMPLES],
        )


class EvidenceCorroborator:
    """
    Groups claim fragments by canonical key and keeps corroborated claims.

    Attributes:
        min_count: Minimum contributing fragments for a key to survive
        max_claims: Output cap
        key_max_length: Canonical key truncation length
    """

    def __init__(
        self,
        min_count: int = DEFAULT_MIN_COUNT,
        max_claims: int = DEFAULT_MAX_CLAIMS,
        key_max_length: int = DEFAULT_KEY_MAX_LENGTH,
    ):
        self.min_count = min_count
        self.max_claims = max_claims
        self.key_max_length = key_max_length

    @classmethod
    def from_settings(cls, settings: Settings) -> "EvidenceCorroborator":
        return cls(
            min_count=settings.corroboration_min_count,
            max_claims=settings.corroboration_max_claims,
            key_max_length=settings.claim_key_max_length,
        )

    def normalize(self, fragments: Iterable[ClaimFragment]) -> CorroborationResult:
        """
        Corroborate a run's fragments.

        Args:
            fragments: Extracted fragments across all sources. Fragments with
                is_valid=False are ignored entirely.

        Returns:
            CorroborationResult with claims, source_count (distinct URLs over
            valid fragments, before the corroboration filter) and claim_count.
        """
        groups: dict[str, _ClaimGroup] = {}
        sources: set[str] = set()

        for fragment in fragments:
            if not fragment.is_valid:
                continue
            sources.add(fragment.source_url)

            key = canonicalize_claim(fragment.claim, self.key_max_length)
            if not key:
                continue

            group = groups.get(key)
            if group is None:
                group = groups[key] = _ClaimGroup(key=key)
            group.count += 1
            group.citations.add(fragment.source_url)
            group.phrasings.add(fragment.claim)

        surviving = sorted(
            (g for g in groups.values() if g.count >= self.min_count),
            key=lambda g: (-g.count, g.key),
        )[: self.max_claims]

        claims = [g.to_claim() for g in surviving]
        return CorroborationResult(
            claims=claims,
            source_count=len(sources),
            claim_count=len(claims),
        )
