"""Checks run by the wizard before settings are saved."""

from dataclasses import dataclass
from typing import Any

import httpx

from codemorph.services.llm_client import api_error_message


@dataclass
class ValidationResult:
    """Outcome of a check.

    Attributes:
        success: Whether the check passed
        error_message: What went wrong, None on success
        data: Extra results, e.g. {"models": [...]} after a key check
    """
    success: bool
    error_message: str | None = None
    data: Any | None = None


def _generation_models(payload: dict) -> list[str]:
    """Names of models that support generateContent, without the 'models/' prefix."""
    models = payload.get("models")
    names = []
    for model in models if isinstance(models, list) else []:
        if not isinstance(model, dict):
            continue
        methods = model.get("supportedGenerationMethods") or []
        if methods and "generateContent" not in methods:
            continue
        name = model.get("name")
        if not isinstance(name, str):
            continue
        if name.startswith("models/"):
            name = name[len("models/"):]
        if name:
            names.append(name)
    return names


def _status_failure(endpoint: str, response: httpx.Response) -> ValidationResult:
    """Explain a non-2xx answer to the models listing."""
    detail = api_error_message(response)

    # Gemini answers an unknown key with 400 INVALID_ARGUMENT
    if response.status_code in (400, 401):
        hint = "Create or copy a key at https://aistudio.google.com/apikey"
        summary = "Invalid API key"
    elif response.status_code == 403:
        hint = "The key exists but the Generative Language API is not enabled for its project"
        summary = "API key not allowed"
    else:
        hint = f"Endpoint: {endpoint}"
        summary = "Gemini API error"

    return ValidationResult(success=False, error_message=f"{summary}: {detail}\n  {hint}")


async def validate_gemini_connection(
    endpoint: str, api_key: str, timeout: int = 30
) -> ValidationResult:
    """List the models visible to api_key, which proves the key works.

    Args:
        endpoint: Generative Language API base URL
        api_key: Key to check
        timeout: Seconds to wait for the listing

    Returns:
        On success, data={"models": [...]} with the models usable for
        generateContent
    """
    models_url = f"{str(endpoint).rstrip('/')}/models"

    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.get(
                models_url,
                headers={"x-goog-api-key": api_key},
                params={"pageSize": 1000},
            )
    except httpx.TimeoutException:
        return ValidationResult(
            success=False,
            error_message=f"No answer from {endpoint} within {timeout} seconds",
        )
    except httpx.InvalidURL:
        return ValidationResult(
            success=False,
            error_message=(
                f"Not a usable endpoint URL: {endpoint}\n"
                f"  The default is https://generativelanguage.googleapis.com/v1beta"
            ),
        )
    except httpx.HTTPError as e:
        return ValidationResult(
            success=False,
            error_message=(
                f"Could not reach {endpoint}: {e}\n"
                f"  Check your network connection and the ai.endpoint setting"
            ),
        )

    if response.status_code >= 400:
        return _status_failure(endpoint, response)

    try:
        payload = response.json()
    except ValueError:
        payload = None

    if not isinstance(payload, dict):
        return ValidationResult(
            success=False,
            error_message=f"Unexpected answer from {models_url}: {response.text[:200]}",
        )

    return ValidationResult(success=True, data={"models": _generation_models(payload)})
