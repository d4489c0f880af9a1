"""Prompt templates for the inference-backed audit stages.

Stage 2 asks for independent source URLs, stage 3 cross-references the
manufacturer claim profile against corroborated evidence, stage 4 writes the
narrative verdict around deterministic pre-computed scores.

All prompts demand bare JSON; responses still go through parse_llm_json.
Literal braces are doubled for str.format.
"""

SOURCE_DISCOVERY_TEMPERATURE = 0.3
VERIFICATION_TEMPERATURE = 0.2
ASSESSMENT_TEMPERATURE = 0.1

SOURCE_DISCOVERY_PROMPT = '''Find 3 to 5 independent sources about long-term usage, ownership reports, reliability, measured testing, manuals, or teardowns for:
"{product_name}" ({category})

KNOWN MANUFACTURER CLAIMS:
{claim_lines}

Rules:
- Prefer independent testing, manuals/spec sheets, teardowns, and long-term owner reports.
- Avoid affiliate listicles, coupon pages, and store landing pages.
- Domains should be diverse (no duplicates if possible).

Return ONLY valid JSON. No markdown, no code fences, no explanatory text.

{{
  "sources": [
    {{"url": "https://...", "type": "review|forum|manual|teardown|gov"}}
  ]
}}'''


VERIFICATION_PROMPT = '''Cross-reference manufacturer claims with independently corroborated evidence.

PRODUCT: {product_name}

MANUFACTURER CLAIMS:
{claim_lines}

CORROBORATED EVIDENCE (claim, number of independent mentions):
{evidence_lines}

TASK 1: REALITY LEDGER
For EACH manufacturer claim above, determine the real-world value based on the evidence.
- If confirmed: use the claimed value (e.g. "Confirmed 2000W").
- If different: use the observed value (e.g. "Actually ~1800W").
- If unknown: write "Not verified".

TASK 2: DISCREPANCIES
Identify ONLY meaningful discrepancies (more than 3% variance or functional impact).
Add-on or expansion battery capacity is not a discrepancy in the base unit's capacity.

Do not use quotation marks inside any string values. Use apostrophes or rewrite.
Return ONLY valid JSON. No markdown, no code fences, no explanatory text.

{{
  "reality_ledger": [
    {{"label": "Battery Capacity", "value": "2850Wh (tested avg)"}}
  ],
  "red_flags": [
    {{
      "claim": "exact claim text",
      "reality": "what testing found",
      "severity": "minor|moderate|severe",
      "impact": "practical effect on users"
    }}
  ]
}}'''


ASSESSMENT_PROMPT = '''Synthesize a verdict for the following product audit.

PRODUCT: {product_name}

=== PRE-COMPUTED SCORES (deterministic, do not override) ===
Truth Index Base Score: {base_score}
Claims Accuracy: {claims_accuracy}
Real-World Fit: {real_world_fit}
Operational Noise: {operational_noise}

=== CONTEXT ===

1. MANUFACTURER CLAIMS:
{claim_lines}

2. CORROBORATED EVIDENCE:
{evidence_lines}

3. VERIFIED DISCREPANCIES ({discrepancy_count} unique issues):
{discrepancy_lines}

=== INSTRUCTIONS ===

Interpret and summarize the data above. Do NOT invent new issues.

- truth_index: Use the base score ({base_score}). You may adjust by at most 3 points.
- strengths: Cite specific corroborated evidence or confirmed specifications.
- limitations: Reference ONLY items from Section 3. Use a "Verified:" prefix.
- practical_impact: Real-world consequence of each discrepancy, with numbers.
- good_fit: Specific user types who would benefit despite the limitations.
- consider_alternatives: Specific needs this product does NOT meet well.

Write for a consumer audience in plain language.
BANNED: technical debt, non-production environments, enterprise, stakeholder, leverage, synergy, ecosystem lock-in, robust, scalable.

Do not use quotation marks inside any string values. Use apostrophes or rewrite.
Return ONLY valid JSON. No markdown, no code fences.

{{
  "truth_index": {base_score},
  "score_interpretation": "One sentence explaining the score.",
  "strengths": ["..."],
  "limitations": ["Verified: ..."],
  "practical_impact": ["..."],
  "good_fit": ["..."],
  "consider_alternatives": ["If you need ..."]
}}'''


def format_lines(items: list[str], empty: str = "- None available") -> str:
    """Render a bullet list for prompt interpolation."""
    if not items:
        return empty
    return "\n".join(f"- {item}" for item in items)
