"""
URL query masking.

Only the query component is touched. Scheme, host, path and fragment are
kept byte-for-byte, which is why the query is cut out of the raw string
instead of being rebuilt with urlunsplit.
"""

from urllib.parse import unquote_plus, urlsplit

import structlog

from .policy import MASK, MaskingPolicy, PrivacyLevel

logger = structlog.get_logger(__name__)


def mask_url(url: str, policy: MaskingPolicy) -> str:
    """
    Mask or strip the query parameters of a URL.

    Args:
        url: Absolute or relative URL
        policy: Active masking policy

    Returns:
        The masked URL, or the URL unchanged when it cannot be parsed
    """
    if policy.level is PrivacyLevel.OPEN:
        return url

    try:
        parts = urlsplit(url)
        # Accessing port validates it
        parts.port
    except ValueError as e:
        logger.debug("Unparseable URL left unchanged", error=str(e))
        return url

    # Same split order urlsplit uses: fragment first, then query
    head, hash_sep, fragment = url.partition("#")
    base, query_sep, query = head.partition("?")
    if not query_sep:
        return url

    if policy.level is PrivacyLevel.LOCKED:
        return f"{base}{hash_sep}{fragment}"

    masked_query = _mask_query_string(query, policy)
    return f"{base}?{masked_query}{hash_sep}{fragment}"


def _mask_query_string(query: str, policy: MaskingPolicy) -> str:
    """Mask each name=value pair independently, keeping order and duplicates."""
    if not query:
        return query

    masked_pairs = []
    for pair in query.split("&"):
        if not pair:
            masked_pairs.append(pair)
            continue

        name = pair.partition("=")[0]
        if policy.is_query_param_exempt(unquote_plus(name)):
            masked_pairs.append(pair)
        else:
            masked_pairs.append(f"{name}={MASK}")

    return "&".join(masked_pairs)
