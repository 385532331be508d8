import re


def sanitize_search_term(term: str) -> str:
    """Sanitize search terms for LIKE queries (escape character is a backslash)"""
    if not isinstance(term, str):
        return ""

    # Escape LIKE wildcards so they match literally
    sanitized = re.sub(r"[%_\\]", r"\\\g<0>", term.strip())
    # Limit length
    sanitized = sanitized[:100]

    return sanitized
