"""
Shared HTTP transport for provider clients.

One requests.Session for the process, plus a simple per-host rate limit so
batched detail lookups do not burst past upstream limits.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import requests

from services.errors import ProviderUnavailable

logger = logging.getLogger(__name__)
_session = requests.Session()
_lock = threading.Lock()
_last_request_ts: Dict[str, float] = {}
_min_interval_by_host: Dict[str, float] = {}


def set_min_interval(host: str, seconds: float) -> None:
    """Configure the minimum spacing between requests to one host."""
    with _lock:
        _min_interval_by_host[host] = seconds


def _wait_for_slot(host: str) -> None:
    min_interval = _min_interval_by_host.get(host, 0.0)
    if min_interval <= 0:
        return
    with _lock:
        now = time.time()
        delta = now - _last_request_ts.get(host, 0.0)
        if delta < min_interval:
            time.sleep(min_interval - delta)
        _last_request_ts[host] = time.time()


def _throttled_request(
    method: str,
    url: str,
    *,
    params: Optional[Dict[str, Any]] = None,
    json_body: Optional[Dict[str, Any]] = None,
    data: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    timeout: float,
) -> requests.Response:
    """Perform a request with the per-host rate limit applied."""
    _wait_for_slot(urlparse(url).netloc)
    return _session.request(method, url, params=params, json=json_body, data=data, headers=headers, timeout=timeout)


def request_json(
    provider_name: str,
    method: str,
    url: str,
    *,
    params: Optional[Dict[str, Any]] = None,
    json_body: Optional[Dict[str, Any]] = None,
    data: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    timeout: float = 10.0,
) -> Any:
    """
    Issue a request and decode the JSON body.

    Network errors, non-2xx responses and undecodable bodies all surface as
    ProviderUnavailable so callers handle a single failure type.
    """
    try:
        resp = _throttled_request(
            method, url, params=params, json_body=json_body, data=data, headers=headers, timeout=timeout
        )
    except requests.RequestException as exc:
        logger.warning("%s request failed: %s %s: %s", provider_name, method, url, exc)
        raise ProviderUnavailable(str(exc), provider_name=provider_name) from exc

    if resp.status_code >= 400:
        body = (resp.text or "")[:300]
        logger.warning("%s returned HTTP %s for %s: %s", provider_name, resp.status_code, url, body)
        raise ProviderUnavailable(
            f"{provider_name} HTTP {resp.status_code}",
            provider_name=provider_name,
            details={"status_code": resp.status_code, "body": body},
        )

    try:
        return resp.json()
    except ValueError as exc:
        logger.warning("%s returned invalid JSON for %s: %s", provider_name, url, exc)
        raise ProviderUnavailable("invalid JSON response", provider_name=provider_name) from exc


def get_json(provider_name: str, url: str, **kwargs: Any) -> Any:
    return request_json(provider_name, "GET", url, **kwargs)


def post_json(provider_name: str, url: str, **kwargs: Any) -> Any:
    return request_json(provider_name, "POST", url, **kwargs)
