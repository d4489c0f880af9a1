"""Inference client, rate limiting and lenient JSON parsing."""

from audit_system.llm.gemini_client import GeminiClient
from audit_system.llm.json_parser import JsonParseError, parse_llm_json
from audit_system.llm.rate_limiter import TokenBucket

__all__ = ["GeminiClient", "JsonParseError", "parse_llm_json", "TokenBucket"]
