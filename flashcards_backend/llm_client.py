import logging
from typing import Any, Dict, List, Optional

import requests
from django.conf import settings
from requests import RequestException

logger = logging.getLogger(__name__)

_STATUS_MESSAGES = {
    402: "Language model quota exhausted. Please add credits to the provider account.",
    429: "Language model rate limit exceeded. Please try again in a moment.",
}


def call_llm(
    messages: List[Dict[str, str]],
    *,
    model: Optional[str] = None,
    response_format: Optional[Dict[str, Any]] = None,
    temperature: Optional[float] = None,
    **kwargs: Any,
) -> Dict[str, Any]:
    """
    Send a chat completion request to the configured language model provider.

    Returns a dictionary with keys:
    - success: whether the call succeeded.
    - content: the message content returned by the model when successful.
    - response: the decoded provider payload when successful.
    - error: a human-readable message when unsuccessful.
    - status_code: the provider HTTP status when it answered with an error.
    """

    llm_base_url = getattr(settings, "LLM_BASE_URL", None)
    llm_api_key = getattr(settings, "LLM_API_KEY", None)
    default_model = getattr(settings, "LLM_MODEL", "deepseek-chat")

    if not (llm_base_url and llm_api_key):
        return {"success": False, "error": "LLM connection is not configured."}

    timeout = getattr(settings, "LLM_TIMEOUT", 60)
    url = f"{llm_base_url.rstrip('/')}/chat/completions"
    request_payload: Dict[str, Any] = {
        "model": model or default_model,
        "messages": messages,
        "stream": False,
    }
    if response_format:
        request_payload["response_format"] = response_format
    if temperature is not None:
        request_payload["temperature"] = temperature
    request_payload.update(kwargs)

    headers = {
        "Authorization": f"Bearer {llm_api_key}",
        "Content-Type": "application/json",
    }

    try:
        response = requests.post(url, headers=headers, json=request_payload, timeout=timeout)
    except RequestException as exc:
        logger.exception("HTTP error when reaching language model service: %s", exc)
        return {
            "success": False,
            "error": f"Failed to reach language model service ({exc}). Please try again later.",
        }

    if response.status_code in _STATUS_MESSAGES:
        logger.warning("Language model service answered %s: %s", response.status_code, response.text)
        return {
            "success": False,
            "error": _STATUS_MESSAGES[response.status_code],
            "status_code": response.status_code,
        }
    if response.status_code >= 400:
        logger.error("Language model service answered %s: %s", response.status_code, response.text)
        return {
            "success": False,
            "error": f"Language model service error ({response.status_code}). Please try again later.",
            "status_code": response.status_code,
        }

    try:
        response_data = response.json()
        choices = response_data.get("choices")
        if not choices:
            raise KeyError("Missing 'choices' in response.")
        content = choices[0].get("message", {}).get("content")
        if content is None:
            raise KeyError("Missing 'content' in response message.")
    except ValueError as exc:
        logger.exception("Failed to decode language model response JSON: %s", exc)
        return {
            "success": False,
            "error": f"Invalid response from language model service ({exc}).",
        }
    except (KeyError, AttributeError) as exc:
        logger.exception("Unexpected language model response shape: %s", exc)
        return {
            "success": False,
            "error": f"Unexpected language model service response ({exc}). Please try again later.",
        }

    if isinstance(content, list):
        content = "".join(
            part.get("text", "") if isinstance(part, dict) else str(part) for part in content
        )
    return {"success": True, "response": response_data, "content": content}
