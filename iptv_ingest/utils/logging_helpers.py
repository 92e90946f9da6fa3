"""
Structured logging helpers for consistent log formatting.
"""
import logging
from datetime import datetime, timezone
from urllib.parse import urlsplit, urlunsplit


def sanitize_url(url: str) -> str:
    """Remove credentials (userinfo and query string) from a URL for safe logging."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.scheme:
        return url

    netloc = parts.netloc
    if "@" in netloc:
        netloc = "***:***@" + netloc.split("@", 1)[1]
    query = "***" if parts.query else ""
    return urlunsplit((parts.scheme, netloc, parts.path, query, ""))


def log_section_start(logger: logging.Logger, section_name: str) -> None:
    """
    Log the start of a processing section.

    Args:
        logger: Logger instance
        section_name: Name of the section being started
    """
    logger.info(f"Starting: {section_name}")


def log_section_end(logger: logging.Logger, section_name: str) -> None:
    """
    Log the end of a processing section.

    Args:
        logger: Logger instance
        section_name: Name of the section being ended
    """
    logger.info(f"Completed: {section_name}")


def log_state_change(logger: logging.Logger, old: str, new: str) -> None:
    """Log a load state transition."""
    logger.debug(f"Load state: {old} -> {new}")


def log_load_summary(
    logger: logging.Logger,
    source: str,
    channels_count: int,
    started_at: datetime,
) -> None:
    """
    Log the outcome of a successful channel load.

    Args:
        logger: Logger instance
        source: Where the channels came from (cache or network)
        channels_count: Number of channels loaded
        started_at: When the load began (UTC)
    """
    elapsed = (datetime.now(timezone.utc) - started_at).total_seconds()
    logger.info(f"Loaded {channels_count} channels from {source} in {elapsed:.2f}s")
