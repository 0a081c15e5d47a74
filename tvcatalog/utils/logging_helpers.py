"""
Logging helpers shared by the refresh pipeline.

Sources are third-party URLs that may embed credentials, so every URL goes
through `sanitize_url` before it reaches a log record.
"""
import logging
import time
from urllib.parse import urlsplit, urlunsplit


SENSITIVE_QUERY_KEYS = frozenset({
    "password", "passwd", "pass", "pwd", "username", "user",
    "token", "access_token", "auth", "key", "apikey", "api_key", "secret",
})


def sanitize_url(url: str) -> str:
    """
    Remove credentials from URL for safe logging.

    Masks `user:pass@` userinfo and the values of credential query
    parameters (`get.php?username=..&password=..` style playlist links).
    """
    if "://" not in url:
        return url
    try:
        parts = urlsplit(url)
    except ValueError:
        return url

    netloc = parts.netloc
    if "@" in netloc:
        netloc = "***:***@" + netloc.rsplit("@", 1)[1]

    query = parts.query
    if query:
        masked = []
        for pair in query.split("&"):
            key, sep, _ = pair.partition("=")
            if sep and key.lower() in SENSITIVE_QUERY_KEYS:
                masked.append(f"{key}=***")
            else:
                masked.append(pair)
        query = "&".join(masked)

    if netloc == parts.netloc and query == parts.query:
        return url
    return urlunsplit((parts.scheme, netloc, parts.path, query, parts.fragment))


def log_section_start(logger: logging.Logger, section_name: str) -> float:
    """
    Log the start of a refresh section.

    Returns:
        Monotonic start mark to hand to `log_section_end`
    """
    logger.info(f"Starting: {section_name}")
    return time.monotonic()


def log_section_end(logger: logging.Logger, section_name: str, started: float | None = None) -> None:
    """Log the end of a refresh section, with its duration when `started` is given."""
    if started is None:
        logger.info(f"Completed: {section_name}")
        return
    logger.info(f"Completed: {section_name} in {time.monotonic() - started:.2f}s")


def log_source_processing(logger: logging.Logger, idx: int, total: int, url: str) -> None:
    """Log source processing header."""
    logger.info(f"Processing source {idx}/{total}: {sanitize_url(url)}")
