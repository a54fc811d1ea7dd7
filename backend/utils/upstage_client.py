"""
Centralized client for the Upstage APIs.

Both Document Parse (document digitization) and Solar chat completions
authenticate with the same bearer key, read from ``settings.UPSTAGE_API_KEY``.
"""
import json
import logging
from typing import Any, Dict, List, Optional

import requests as http_requests
from django.conf import settings

logger = logging.getLogger(__name__)

DOCUMENT_PARSE_MODEL = "document-parse"


class UpstageError(Exception):
    """Base class for every failure talking to Upstage."""


class UpstageConfigurationError(UpstageError):
    """The service is not configured (no API key)."""


class UpstageAPIError(UpstageError):
    """Upstage answered with a non-success status or an unusable payload."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        if status_code is not None:
            message = f"{status_code} - {message}"
        super().__init__(message)


def get_upstage_api_key() -> str:
    api_key = getattr(settings, 'UPSTAGE_API_KEY', '')
    if not api_key:
        raise UpstageConfigurationError("UPSTAGE_API_KEY environment variable is required")
    return api_key


def _get_llm_model_name() -> str:
    return getattr(settings, 'UPSTAGE_MODEL', '') or 'solar-pro2-preview'


def _endpoint(path: str) -> str:
    return f"{settings.UPSTAGE_BASE_URL.rstrip('/')}/{path.lstrip('/')}"


def _post(url: str, **kwargs) -> Dict[str, Any]:
    """POST to Upstage and return the decoded JSON body, raising UpstageAPIError on any failure."""
    try:
        response = http_requests.post(url, timeout=settings.UPSTAGE_TIMEOUT, **kwargs)
    except http_requests.exceptions.RequestException as exc:
        raise UpstageAPIError(f"Request to Upstage failed: {exc}") from exc

    if not response.ok:
        raise UpstageAPIError(response.text, status_code=response.status_code)

    try:
        return response.json()
    except ValueError as exc:
        raise UpstageAPIError("Upstage returned a non-JSON response", status_code=response.status_code) from exc


def parse_document(uploaded_file) -> Dict[str, Any]:
    """
    Send a document to Upstage Document Parse.

    Args:
        uploaded_file: Django UploadedFile (anything with .name, .read() and
            optionally .content_type)

    Returns:
        Normalized dict with 'text', 'html', 'elements' and 'pages'. 'text'
        falls back to the HTML output when the plain text output is empty.
    """
    api_key = get_upstage_api_key()

    content_type = getattr(uploaded_file, 'content_type', None) or 'application/octet-stream'
    files = {
        'document': (uploaded_file.name, uploaded_file, content_type),
    }
    data = {
        'output_formats': '["html", "text"]',
        'base64_encoding': '["table"]',
        'ocr': 'auto',
        'coordinates': 'true',
        'model': DOCUMENT_PARSE_MODEL,
    }

    logger.info(f"Sending {uploaded_file.name} to Upstage Document Parse")
    result = _post(
        _endpoint('document-digitization'),
        headers={'Authorization': f'Bearer {api_key}'},
        files=files,
        data=data,
    )

    content = result.get('content')
    if not isinstance(content, dict):
        raise UpstageAPIError("Document Parse response has no content")

    html = content.get('html') or ''
    usage = result.get('usage') or {}
    parsed = {
        'text': content.get('text') or html,
        'html': html,
        'elements': result.get('elements') or [],
        'pages': int(usage.get('pages') or 0),
    }
    logger.info(f"Parsed {uploaded_file.name}: {parsed['pages']} page(s), {len(parsed['elements'])} element(s)")
    return parsed


def chat_completion(messages: List[Dict[str, str]], json_schema: Dict[str, Any], schema_name: str) -> Any:
    """
    Run a non-streaming Solar chat completion constrained to a JSON schema.

    Returns the decoded JSON object from the first choice's message content.
    """
    api_key = get_upstage_api_key()

    payload = {
        'model': _get_llm_model_name(),
        'messages': messages,
        'reasoning_effort': 'high',
        'stream': False,
        'response_format': {
            'type': 'json_schema',
            'json_schema': {
                'name': schema_name,
                'schema': json_schema,
                'strict': True,
            },
        },
    }

    result = _post(
        _endpoint('chat/completions'),
        headers={
            'Authorization': f'Bearer {api_key}',
            'Content-Type': 'application/json',
        },
        json=payload,
    )

    choices = result.get('choices') or []
    if not choices:
        raise UpstageAPIError("No response from SolarLLM")

    content = (choices[0].get('message') or {}).get('content') or ''
    try:
        return json.loads(content)
    except (TypeError, ValueError) as exc:
        logger.error(f"Failed to parse SolarLLM response as JSON: {content[:200]}")
        raise UpstageAPIError("LLM response was not valid JSON") from exc
