"""
Pilbum Backend — Retry Backoff
================================

What:  The tenacity wait strategy shared by the S3 and Azure uploads and the
       GitHub release check.
How:   Exponential growth from RETRY_MIN_WAIT, capped at RETRY_MAX_WAIT,
       plus up to one second of random jitter (never more than the cap, so
       RETRY_MAX_WAIT=0 means no sleeping at all).
"""

from typing import Optional

from tenacity import wait_exponential, wait_random
from tenacity.wait import wait_base

from pilbum.config import settings


def backoff_wait(min_wait: Optional[float] = None, max_wait: Optional[float] = None) -> wait_base:
    low = settings.retry_min_wait if min_wait is None else min_wait
    high = settings.retry_max_wait if max_wait is None else max_wait
    return wait_exponential(multiplier=low, min=low, max=high) + wait_random(0, min(1.0, high))
