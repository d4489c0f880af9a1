"""Prompt templates for the inference-backed audit stages.

Modules:
    stage_prompts: Source discovery, discrepancy verification and final assessment prompts
"""

from audit_system.config.prompts.stage_prompts import (
    ASSESSMENT_PROMPT,
    ASSESSMENT_TEMPERATURE,
    SOURCE_DISCOVERY_PROMPT,
    SOURCE_DISCOVERY_TEMPERATURE,
    VERIFICATION_PROMPT,
    VERIFICATION_TEMPERATURE,
    format_lines,
)

__all__ = [
    "ASSESSMENT_PROMPT",
    "ASSESSMENT_TEMPERATURE",
    "SOURCE_DISCOVERY_PROMPT",
    "SOURCE_DISCOVERY_TEMPERATURE",
    "VERIFICATION_PROMPT",
    "VERIFICATION_TEMPERATURE",
    "format_lines",
]
