"""Allowed-domain checks for embedding the widget."""

import logfire


def is_valid_domain(allowed_domains: list[str] | None, current_domain: str) -> bool:
    """
    Check whether the widget may run on ``current_domain``.

    Rules:
    - No configured domains allows every host
    - ``*.example.com`` matches ``example.com`` and any subdomain of it
    - Anything else must match exactly (case-insensitive, whitespace trimmed)

    Args:
        allowed_domains: Domains configured for the agent
        current_domain: Hostname of the embedding page

    Returns:
        True if the widget may initialise on this host
    """
    if not allowed_domains:
        return True

    current = current_domain.strip().lower()
    for entry in allowed_domains:
        domain = entry.strip().lower()
        if domain.startswith("*."):
            base_domain = domain[2:]
            if current == base_domain or current.endswith("." + base_domain):
                return True
        elif domain == current:
            return True

    logfire.warning(
        "Widget domain not allowed",
        domain=current,
        allowed_count=len(allowed_domains),
    )
    return False
