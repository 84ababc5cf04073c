"""Gemini generation client."""

import httpx
from typing import Any, Dict, Optional

from codemorph.models.config import AIConfig, DEFAULT_ENDPOINT, DEFAULT_MODEL
from codemorph.services.cancellation import CancellationToken
from codemorph.services.exceptions import GenerationError
from codemorph.utils.logging import get_logger


logger = get_logger(__name__)


def _model_path(model: str) -> str:
    """Resource path for a model name ('gemini-2.0-flash' -> 'models/gemini-2.0-flash')."""
    if "/" in model:
        return model
    return f"models/{model}"


def api_error_message(response: httpx.Response) -> str:
    """
    Build an error message from a failed generateContent response.

    The API reports failures as:
    {
        "error": {"code": 429, "message": "...", "status": "RESOURCE_EXHAUSTED"}
    }

    Args:
        response: Non-2xx HTTP response

    Returns:
        "[<status> <reason>] <API message>" or the raw body when it isn't JSON
    """
    prefix = f"[{response.status_code} {response.reason_phrase}]"
    try:
        body = response.json()
        message = body["error"]["message"]
    except (ValueError, KeyError, TypeError):
        message = response.text.strip()[:200]

    return f"{prefix} {message}" if message else prefix


def _extract_text(data: Dict[str, Any]) -> str:
    """
    Extract the generated text from a generateContent response body.

    Gemini returns:
    {
        "candidates": [{
            "content": {"parts": [{"text": "..."}], "role": "model"},
            "finishReason": "STOP"
        }],
        "promptFeedback": {...}
    }

    Args:
        data: Parsed JSON response

    Returns:
        Concatenated text of the first candidate's parts

    Raises:
        GenerationError: If the prompt was blocked or no text came back
    """
    if not isinstance(data, dict):
        raise GenerationError("Malformed response from Gemini API: expected a JSON object")

    candidates = data.get("candidates") or []
    if not candidates:
        feedback = data.get("promptFeedback")
        block_reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
        if block_reason:
            raise GenerationError(f"Text not available. Response was blocked due to {block_reason}")
        raise GenerationError("Gemini response contained no candidates")

    candidate = candidates[0] if isinstance(candidates, list) else None
    if not isinstance(candidate, dict):
        raise GenerationError("Malformed response from Gemini API: unexpected candidate format")

    content = candidate.get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        parts = []
    texts = [part["text"] for part in parts if isinstance(part, dict) and isinstance(part.get("text"), str)]

    if not texts:
        finish_reason = candidate.get("finishReason")
        if finish_reason and finish_reason not in ("STOP", "MAX_TOKENS"):
            raise GenerationError(f"Candidate was blocked due to {finish_reason}")
        raise GenerationError("Gemini response contained no text")

    return "".join(texts)


class GeminiClient:
    """
    HTTP client for the Gemini generateContent API.

    One instance is scoped to one API key and one model. The model name is
    not checked locally; an unknown model surfaces as an API error.

    No retry, no streaming. Errors are not classified here:
    - transport failures propagate as httpx exceptions
    - error statuses and unusable bodies raise GenerationError
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        endpoint: str = DEFAULT_ENDPOINT,
        request_timeout: Optional[float] = None,
    ):
        """
        Initialize Gemini client.

        Args:
            api_key: Gemini API key
            model: Model name, e.g. 'gemini-2.0-flash'
            endpoint: Base URL of the Generative Language API
            request_timeout: Read timeout in seconds, None to wait indefinitely
        """
        self.api_key = api_key
        self.model = model
        self.endpoint = str(endpoint).rstrip("/")
        self.timeout = httpx.Timeout(
            connect=10.0,
            read=request_timeout,
            write=10.0,
            pool=10.0
        )

    @classmethod
    def from_config(cls, api_key: str, ai_config: AIConfig) -> "GeminiClient":
        """Create a client from the `ai` configuration section."""
        return cls(
            api_key=api_key,
            model=ai_config.model,
            endpoint=str(ai_config.endpoint),
            request_timeout=ai_config.request_timeout,
        )

    @property
    def url(self) -> str:
        return f"{self.endpoint}/{_model_path(self.model)}:generateContent"

    async def generate(
        self,
        prompt: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        """
        Submit a single-turn prompt and return the generated text.

        The token is checked before the request is sent. A request already in
        flight is not aborted: it completes and the caller decides what to do
        with the answer.

        Args:
            prompt: Full prompt text
            cancel_token: Optional cancellation token

        Returns:
            Raw text of the model's answer

        Raises:
            OperationCancelledError: If cancellation was requested before sending
            GenerationError: On API error status or a response without text
            httpx.HTTPError: On network errors

        Example:
            >>> client = GeminiClient(api_key="...", model="gemini-2.0-flash")
            >>> text = await client.generate("Rewrite this file ...")
        """
        if cancel_token:
            cancel_token.raise_if_cancelled()

        payload = {
            "contents": [
                {"role": "user", "parts": [{"text": prompt}]}
            ],
        }

        logger.info(
            "gemini_request_started",
            model=self.model,
            endpoint=self.endpoint,
            prompt_length=len(prompt),
        )

        logger.debug(
            "gemini_request_payload",
            payload=payload,
        )

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            headers = {"x-goog-api-key": self.api_key}
            response = await client.post(self.url, json=payload, headers=headers)

            if response.status_code >= 400:
                message = api_error_message(response)
                logger.error(
                    "gemini_http_error",
                    model=self.model,
                    status_code=response.status_code,
                    error=message,
                )
                raise GenerationError(message, status_code=response.status_code)

            try:
                data = response.json()
            except ValueError as e:
                logger.error("gemini_malformed_response", body=response.text[:200], error=str(e))
                raise GenerationError(f"Malformed response from Gemini API: {e}") from e

        logger.debug("gemini_response_body", body=data)

        text = _extract_text(data)

        logger.info(
            "gemini_request_completed",
            model=self.model,
            response_length=len(text),
        )

        return text
