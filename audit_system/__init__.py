"""Staged product-claim audit pipeline.

Audits manufacturer claims about a product against independently gathered
evidence in four ordered stages (claim profile, evidence discovery,
discrepancy verification, final assessment), with per-stage idempotency,
background work claiming and a staleness-driven refresh sweep.
"""

__version__ = "0.1.0"
