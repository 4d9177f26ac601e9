"""Text helpers for bounding captured command output."""

TRUNCATION_MARKER = "[... {count} characters truncated ...]\n"


def truncate_excerpt(text: str, limit: int) -> tuple[str, bool]:
    """
    Keep at most `limit` characters of `text`, preferring the tail.

    Compilers and test runners print their verdict last, so the tail is the
    useful part. Returns the excerpt and whether anything was cut.

    Examples:
        >>> truncate_excerpt("abc", 10)
        ('abc', False)
        >>> truncate_excerpt("abcdef", 2)
        ('[... 4 characters truncated ...]\\nef', True)
    """
    if limit < 0:
        raise ValueError("limit must not be negative")
    if len(text) <= limit:
        return text, False
    dropped = len(text) - limit
    tail = text[len(text) - limit:] if limit else ""
    return TRUNCATION_MARKER.format(count=dropped) + tail, True
