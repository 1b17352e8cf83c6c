# btk_check/domain.py
"""Reduce user supplied domains, URLs and hostnames to a canonical domain"""

SCHEME_PREFIXES = ("http://", "https://")
WWW_PREFIX = "www."


def _normalize_once(raw: str) -> str:
    domain = raw.strip()

    for prefix in SCHEME_PREFIXES:
        if domain.startswith(prefix):
            domain = domain[len(prefix):]

    if domain.startswith(WWW_PREFIX):
        domain = domain[len(WWW_PREFIX):]

    if domain.endswith("/"):
        domain = domain[:-1]

    # Drop any path or query string
    slash = domain.find("/")
    if slash != -1:
        domain = domain[:slash]

    return domain


def normalize_domain(raw: str) -> str:
    """
    Normalize a raw domain string

    Strips surrounding whitespace, an http:// or https:// scheme, a leading
    "www." label, a trailing slash and everything from the first remaining
    slash on. Never raises; an empty input gives an empty result.

    Args:
        raw: Domain, hostname or URL as entered by the user

    Returns:
        Canonical domain string
    """
    if not raw:
        return ""

    domain = _normalize_once(raw)
    # Repeat until stable so normalize_domain(normalize_domain(x)) holds
    while True:
        again = _normalize_once(domain)
        if again == domain:
            return domain
        domain = again
