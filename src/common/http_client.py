"""Shared HTTP helpers used by the package registry and terminology clients.

Encapsulates session setup (TLS, basic auth, proxy) and common
request/timeout error handling so client modules avoid duplicating
try/except blocks. Every transport failure and every non-2xx answer is
raised as a TransportError; there are no retries at this level.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Tuple

import requests

from common.errors import ConfigurationError, TransportError
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)


def build_session(
    *,
    trust_certificates: Optional[str] = None,
    client_certificate: Optional[str] = None,
    client_certificate_private_key: Optional[str] = None,
    basic_auth_username: Optional[str] = None,
    basic_auth_password: Optional[str] = None,
    proxy_url: Optional[str] = None,
    proxy_username: Optional[str] = None,
    proxy_password: Optional[str] = None,
    user_agent: str = "igprep",
) -> requests.Session:
    """Create a requests session with optional mutual TLS, basic auth and proxy.

    Args:
        trust_certificates: PEM bundle used to verify the server, system CAs if None.
        client_certificate: PEM client certificate for mutual TLS.
        client_certificate_private_key: PEM private key for the client certificate.
        basic_auth_username: HTTP basic auth user.
        basic_auth_password: HTTP basic auth password.
        proxy_url: Proxy as scheme://host:port, used for http and https.
        proxy_username: Proxy user.
        proxy_password: Proxy password.

    Returns:
        requests.Session: Configured session.

    Raises:
        ConfigurationError: On incomplete or conflicting settings.
    """
    if client_certificate_private_key and not client_certificate:
        raise ConfigurationError("Client certificate private key configured without client certificate")
    if basic_auth_password and not basic_auth_username:
        raise ConfigurationError("Basic auth password configured without username")
    if proxy_password and not proxy_username:
        raise ConfigurationError("Proxy password configured without proxy username")
    if (proxy_username or proxy_password) and not proxy_url:
        raise ConfigurationError("Proxy credentials configured without proxy url")

    session = requests.Session()
    session.headers["User-Agent"] = user_agent

    if trust_certificates:
        session.verify = trust_certificates
    if client_certificate:
        session.cert = (
            (client_certificate, client_certificate_private_key)
            if client_certificate_private_key
            else client_certificate
        )
    if basic_auth_username:
        session.auth = (basic_auth_username, basic_auth_password or "")
    if proxy_url:
        if proxy_username:
            scheme, sep, rest = proxy_url.partition("://")
            if not sep:
                scheme, rest = "http", proxy_url
            proxy_url = f"{scheme}://{proxy_username}:{proxy_password or ''}@{rest}"
        session.proxies = {"http": proxy_url, "https": proxy_url}

    return session


def _request(
    session: requests.Session,
    method: str,
    url: str,
    *,
    context: str,
    timeout: Tuple[float, float],
    **kwargs: Any,
) -> requests.Response:
    safe_target = safe_url(url)
    with Timer() as t:
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP request",
                extra=extra_context(
                    event="http_request",
                    component="http_client",
                    action=method,
                    target=safe_target,
                    context=context,
                ),
            )
        try:
            res = session.request(method, url, timeout=timeout, **kwargs)
        except requests.Timeout as exc:
            logger.error("%s request to %s timed out", context, safe_target)
            raise TransportError(f"{context} request to {safe_target} timed out", url=safe_target) from exc
        except requests.RequestException as exc:  # includes ConnectionError
            logger.error("%s connection error: %s", context, exc)
            raise TransportError(f"{context} connection error for {safe_target}: {exc}", url=safe_target) from exc

    if not 200 <= res.status_code < 300:
        logger.warning(
            "HTTP non-2xx response",
            extra=extra_context(
                event="http_response",
                component="http_client",
                action=method,
                outcome="non_2xx",
                status_code=res.status_code,
                duration_ms=t.duration_ms(),
                target=safe_target,
                context=context,
            ),
        )
        raise TransportError(
            f"{context} {method} {safe_target} answered with status {res.status_code}",
            url=safe_target,
            status_code=res.status_code,
        )

    if is_debug_enabled(logger):
        logger.debug(
            "HTTP response ok",
            extra=extra_context(
                event="http_response",
                component="http_client",
                action=method,
                outcome="success",
                status_code=res.status_code,
                duration_ms=t.duration_ms(),
                target=safe_target,
                context=context,
            ),
        )
    return res


def safe_get(
    session: requests.Session,
    url: str,
    *,
    context: str,
    timeout: Tuple[float, float],
    **kwargs: Any,
) -> requests.Response:
    """Perform a GET request with consistent error handling and DEBUG traces."""
    return _request(session, "GET", url, context=context, timeout=timeout, **kwargs)


def safe_post(
    session: requests.Session,
    url: str,
    *,
    context: str,
    timeout: Tuple[float, float],
    data: Optional[str] = None,
    **kwargs: Any,
) -> requests.Response:
    """Perform a POST request with consistent error handling and DEBUG traces.

    Args:
        session: Session to send the request with.
        url: Target URL.
        context: Human-readable source tag for logs (e.g., "terminology").
        timeout: (connect, read) timeout in seconds.
        data: Optional payload for the POST body.
        **kwargs: Passed through to requests.

    Returns:
        requests.Response: The HTTP response object.
    """
    return _request(session, "POST", url, context=context, timeout=timeout, data=data, **kwargs)


def parse_json(res: requests.Response, *, context: str) -> Any:
    """Decode a JSON response body, raising TransportError when it is not JSON."""
    try:
        return json.loads(res.content.decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise TransportError(
            f"{context} response from {safe_url(res.url or '')} is not valid JSON: {exc}",
            url=safe_url(res.url or ""),
            status_code=res.status_code,
        ) from exc


def get_json(
    session: requests.Session,
    url: str,
    *,
    context: str,
    timeout: Tuple[float, float],
    headers: Optional[Dict[str, str]] = None,
    **kwargs: Any,
) -> Any:
    """Perform GET request and parse the JSON response."""
    res = safe_get(session, url, context=context, timeout=timeout, headers=headers, **kwargs)
    return parse_json(res, context=context)
