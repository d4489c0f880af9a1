"""Gemini API client with timeout, bounded retry and rate limiting."""

import asyncio
from typing import Any, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from google.generativeai.types.generation_types import BlockedPromptException
from loguru import logger
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from audit_system.config.settings import Settings
from audit_system.errors import ExecutorFailure, ValidationFailure
from audit_system.llm.json_parser import JsonParseError, parse_llm_json
from audit_system.llm.rate_limiter import TokenBucket

# Transport-level failures worth another attempt. Timeouts are not retried:
# the caller's wall-clock budget already covers one full wait.
_TRANSIENT_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.InternalServerError,
    google_exceptions.ResourceExhausted,
    google_exceptions.TooManyRequests,
)


class GeminiClient:
    """
    Google Gemini API client used as a text-in / JSON-out function.

    Every call is rate limited by a token bucket, bounded by a timeout and
    retried with exponential backoff on transient transport errors. All
    failures surface as ExecutorFailure (transient) or ValidationFailure
    (unusable response), never as raw SDK exceptions.

    Attributes:
        model_name: Gemini model identifier
    """

    def __init__(
        self,
        settings: Settings,
        model: Optional[Any] = None,
        rate_limiter: Optional[TokenBucket] = None,
    ):
        """
        Initialize the client.

        The SDK model is created lazily so the package imports and non-inference
        stages run without an API key.

        Args:
            settings: Application settings (credentials, timeout, retries, RPM)
            model: Pre-built model object exposing generate_content_async
            rate_limiter: Override for the per-client token bucket
        """
        self.model_name = settings.gemini_model
        self._api_key = settings.gemini_api_key
        self._timeout = settings.inference_timeout_seconds
        self._max_retries = settings.inference_max_retries
        self._model = model
        self._limiter = rate_limiter or TokenBucket.per_minute(settings.max_rpm)
        self._logger = logger.bind(component="GeminiClient")

    def _get_model(self) -> Any:
        if self._model is None:
            if not self._api_key:
                raise ExecutorFailure(
                    "inference_unconfigured",
                    "GEMINI_API_KEY not configured in environment",
                )
            genai.configure(api_key=self._api_key)
            self._model = genai.GenerativeModel(self.model_name)
            self._logger.info(f"Gemini client initialized with model {self.model_name}")
        return self._model

    async def generate(
        self,
        prompt: str,
        *,
        temperature: float = 0.2,
        max_output_tokens: int = 2048,
        json_mode: bool = True,
    ) -> str:
        """
        Generate text for a prompt.

        Args:
            prompt: Input prompt
            temperature: Sampling temperature. Lower = more deterministic
            max_output_tokens: Output token cap
            json_mode: Request an application/json response

        Returns:
            Generated text

        Raises:
            ExecutorFailure: Timeout, transport error, blocked prompt or empty response
        """
        model = self._get_model()
        config_kwargs: dict[str, Any] = {
            "temperature": temperature,
            "max_output_tokens": max_output_tokens,
        }
        if json_mode:
            config_kwargs["response_mime_type"] = "application/json"
        generation_config = genai.types.GenerationConfig(**config_kwargs)

        await self._limiter.acquire()

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_retries + 1),
                wait=wait_exponential(multiplier=1, min=1, max=8),
                retry=retry_if_exception_type(_TRANSIENT_ERRORS),
                reraise=True,
            ):
                with attempt:
                    response = await asyncio.wait_for(
                        model.generate_content_async(
                            prompt,
                            generation_config=generation_config,
                        ),
                        timeout=self._timeout,
                    )
        except asyncio.TimeoutError as e:
            self._logger.warning(f"Inference timed out after {self._timeout}s")
            raise ExecutorFailure(
                "inference_timeout", f"no response within {self._timeout}s"
            ) from e
        except BlockedPromptException as e:
            self._logger.error(f"Prompt blocked by safety filters: {e}")
            raise ExecutorFailure("inference_blocked", str(e)) from e
        except google_exceptions.GoogleAPIError as e:
            self._logger.warning(f"Inference call failed: {e}")
            raise ExecutorFailure("inference_error", str(e)) from e

        try:
            text = response.text
        except ValueError as e:
            # Raised by the SDK when the response has no text parts.
            raise ExecutorFailure("inference_empty", str(e)) from e

        if not text or not text.strip():
            raise ExecutorFailure("inference_empty", "model returned no text")
        return text

    async def generate_json(
        self,
        prompt: str,
        *,
        temperature: float = 0.2,
        max_output_tokens: int = 2048,
    ) -> Any:
        """
        Generate and parse a JSON response.

        Raises:
            ExecutorFailure: See generate()
            ValidationFailure: Response could not be parsed as JSON
        """
        text = await self.generate(
            prompt,
            temperature=temperature,
            max_output_tokens=max_output_tokens,
        )
        try:
            return parse_llm_json(text)
        except JsonParseError as e:
            self._logger.warning(f"Unparseable inference response: {e}")
            raise ValidationFailure("invalid_json", str(e)) from e
