"""
Gateway HTTP helpers.

Thin wrappers over requests that turn every transport, status and parse
failure into a ProviderError carrying a short, log-safe message.
"""
import logging
from typing import Optional

import requests as http_requests

from storefront.errors import ProviderError

logger = logging.getLogger(__name__)


def _parse_json(resp, label: str) -> dict:
    text = resp.text or ""
    if not 200 <= resp.status_code < 300:
        raise ProviderError(f"{label} HTTP {resp.status_code}: {text[:300]}")
    if not text.strip():
        return {}
    try:
        data = resp.json()
    except ValueError:
        raise ProviderError(f"Invalid {label} response: {text[:300]}")
    if not isinstance(data, dict):
        raise ProviderError(f"Invalid {label} response: {text[:300]}")
    return data


def _send(method: str, url: str, label: str, timeout: int, **kwargs) -> dict:
    try:
        if method == "GET":
            resp = http_requests.get(url, timeout=timeout, allow_redirects=False, **kwargs)
        else:
            resp = http_requests.post(url, timeout=timeout, allow_redirects=False, **kwargs)
    except http_requests.exceptions.Timeout:
        logger.error(f"[{label}] {method} request timed out")
        raise ProviderError(f"{label} request timed out")
    except http_requests.exceptions.RequestException as e:
        logger.error(f"[{label}] {method} request failed: {type(e).__name__}")
        raise ProviderError(f"{label} request failed: {type(e).__name__}")
    return _parse_json(resp, label)


def get_json(url: str, label: str, timeout: int, headers: Optional[dict] = None) -> dict:
    return _send("GET", url, label, timeout, headers=headers or {})


def post_json(
    url: str,
    label: str,
    timeout: int,
    payload: Optional[dict] = None,
    headers: Optional[dict] = None,
) -> dict:
    return _send("POST", url, label, timeout, json=payload if payload is not None else {}, headers=headers or {})


def post_form(
    url: str,
    label: str,
    timeout: int,
    data: dict,
    headers: Optional[dict] = None,
    auth: Optional[tuple] = None,
) -> dict:
    return _send("POST", url, label, timeout, data=data, headers=headers or {}, auth=auth)
