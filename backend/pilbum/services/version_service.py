"""
Pilbum Backend — Update Checker
=================================

What:  Compares the running version with the latest GitHub release of
       GITHUB_REPO.
How:   httpx async client with tenacity retries on transport errors and 5xx
       responses; successful answers are cached in-process for an hour.
Who:   GET /api/version (dashboard "update available" badge).
"""

import logging
import time
from typing import List, Optional, Tuple

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
)

from pilbum import __version__
from pilbum.config import settings
from pilbum.schemas.system import VersionInfo
from pilbum.services.retry_policy import backoff_wait

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"
CACHE_TTL_SECONDS = 3600
REQUEST_TIMEOUT = 10.0
CHECK_FAILED = "Failed to check for updates"

_cache: Optional[Tuple[float, VersionInfo]] = None


def _version_parts(version: str) -> List[int]:
    parts = []
    for piece in version.strip().lstrip("vV").split("."):
        digits = ""
        for ch in piece:
            if not ch.isdigit():
                break
            digits += ch
        parts.append(int(digits) if digits else 0)
    return parts


def compare_versions(a: str, b: str) -> int:
    """1 if a > b, -1 if a < b, 0 if equal. A leading 'v' is ignored; missing parts count as 0."""
    parts_a, parts_b = _version_parts(a), _version_parts(b)
    for i in range(max(len(parts_a), len(parts_b))):
        num_a = parts_a[i] if i < len(parts_a) else 0
        num_b = parts_b[i] if i < len(parts_b) else 0
        if num_a > num_b:
            return 1
        if num_a < num_b:
            return -1
    return 0


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    return isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code >= 500


@retry(
    retry=retry_if_exception(_is_retryable),
    stop=stop_after_attempt(settings.retry_max_attempts),
    wait=backoff_wait(),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
async def _fetch_latest_release(client: httpx.AsyncClient, repo: str) -> Optional[dict]:
    """Release JSON, or None when the repository has no releases (404)."""
    response = await client.get(
        f"{GITHUB_API}/repos/{repo}/releases/latest",
        headers={
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "Pilbum-Update-Checker",
        },
    )
    if response.status_code == 404:
        return None
    response.raise_for_status()
    return response.json()


async def check_for_updates(force: bool = False) -> VersionInfo:
    """
    Latest release info. Failures never raise: the result carries
    error="Failed to check for updates" instead and is not cached.
    """
    global _cache
    now = time.monotonic()
    if not force and _cache is not None and now - _cache[0] < CACHE_TTL_SECONDS:
        return _cache[1]

    try:
        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
            release = await _fetch_latest_release(client, settings.github_repo)
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Update check failed: %s", e)
        return VersionInfo(current_version=__version__, error=CHECK_FAILED)

    if release is None:
        info = VersionInfo(current_version=__version__)
    else:
        latest = str(release.get("tag_name", "")).lstrip("vV")
        info = VersionInfo(
            current_version=__version__,
            latest_version=latest,
            has_update=compare_versions(latest, __version__) > 0,
            release_url=release.get("html_url"),
            release_name=release.get("name"),
            published_at=release.get("published_at"),
            release_notes=release.get("body"),
        )

    _cache = (now, info)
    return info


def clear_cache() -> None:
    global _cache
    _cache = None
