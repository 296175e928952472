"""
Outbound URL validation.

Integration credentials are edited by administrators, so every base URL is
checked before it reaches an adapter.
"""

import logging
import re
from typing import Dict, List, Optional
from urllib.parse import urlsplit, urlunsplit

from .errors import AdapterError, ErrorCode

logger = logging.getLogger(__name__)


# Official hosts per provider. Providers with an empty list accept any
# public host instead.
ALLOWED_BASE_URLS: Dict[str, List[str]] = {
    "OPENAI": ["https://api.openai.com"],
    "ANTHROPIC": ["https://api.anthropic.com"],
    "GEMINI": ["https://generativelanguage.googleapis.com"],
    "AZURE_OPENAI": [],
    "OLLAMA": [],
    "CUSTOM_LLM": [],
}

CUSTOM_ENDPOINT_PROVIDERS = {"AZURE_OPENAI", "OLLAMA", "CUSTOM_LLM"}

AZURE_HOST_SUFFIX = ".openai.azure.com"

_PRIVATE_IP_PATTERNS = [
    re.compile(r"^10\.\d{1,3}\.\d{1,3}\.\d{1,3}$"),
    re.compile(r"^172\.(1[6-9]|2\d|3[01])\.\d{1,3}\.\d{1,3}$"),
    re.compile(r"^192\.168\.\d{1,3}\.\d{1,3}$"),
    re.compile(r"^127\.\d{1,3}\.\d{1,3}\.\d{1,3}$"),
    re.compile(r"^169\.254\.\d{1,3}\.\d{1,3}$"),
]


def is_private_or_internal_host(hostname: str) -> bool:
    """True for loopback, link-local, RFC 1918 and cloud metadata hosts."""
    host = hostname.lower()

    if host in ("localhost", "127.0.0.1", "0.0.0.0", "::1", "[::1]"):
        return True

    if host in ("169.254.169.254", "metadata.google.internal") or host.endswith(".internal"):
        return True

    return any(p.match(host) for p in _PRIVATE_IP_PATTERNS)


def get_validated_base_url(provider: str, url: Optional[str]) -> Optional[str]:
    """
    Validate an administrator-supplied base URL for a provider.

    Returns the URL when acceptable, otherwise None so the adapter falls back
    to its default.
    """
    if not url:
        return None

    try:
        parsed = urlsplit(url)
    except ValueError:
        logger.warning(f"Invalid URL format: {url!r}. Using default.")
        return None

    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        logger.warning(f"Invalid protocol in URL: {url!r}. Using default.")
        return None

    allowed = ALLOWED_BASE_URLS.get(provider)
    if allowed:
        normalized = url.lower().rstrip("/")
        for allowed_url in allowed:
            prefix = allowed_url.lower().rstrip("/")
            if normalized == prefix or normalized.startswith(prefix + "/"):
                return url
        logger.warning(
            f"LLM base URL {url!r} not in allowlist for provider {provider}. Using default."
        )
        return None

    if provider in CUSTOM_ENDPOINT_PROVIDERS:
        if is_private_or_internal_host(parsed.hostname):
            logger.warning(
                f"Blocked private/internal URL {url!r} for provider {provider}. Using default."
            )
            return None
        return url

    return None


def validate_azure_endpoint(endpoint: str, provider: str = "Azure OpenAI") -> str:
    """
    Validate an Azure OpenAI resource endpoint and rebuild it.

    The result is reassembled from scheme, hostname, path and query only, so
    credentials, ports and fragments in the configured value are dropped.

    Raises:
        AdapterError: ``MISSING_ENDPOINT`` when the endpoint is not an HTTPS
            URL on an ``*.openai.azure.com`` host.
    """
    try:
        parsed = urlsplit(endpoint or "")
    except ValueError:
        parsed = None

    hostname = (parsed.hostname or "").lower() if parsed else ""
    if (
        parsed is None
        or parsed.scheme != "https"
        or not hostname.endswith(AZURE_HOST_SUFFIX)
        or hostname == AZURE_HOST_SUFFIX.lstrip(".")
    ):
        raise AdapterError(
            f"Invalid Azure OpenAI endpoint: must be an https URL on a *{AZURE_HOST_SUFFIX} host",
            ErrorCode.MISSING_ENDPOINT,
            provider,
            status_code=400,
        )

    path = parsed.path.rstrip("/")
    return urlunsplit(("https", hostname, path, parsed.query, ""))
