# Copyright (C) 2024 RabbitTrail Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""In-memory rate limiting for auth and invitation endpoints (brute-force protection)."""

import time
from collections import defaultdict
from fastapi import HTTPException, Request

# (client_key, bucket) -> list of request timestamps in window
_buckets: defaultdict[tuple[str, str], list[float]] = defaultdict(list)
# Window seconds; max requests per window per bucket
WINDOW = 60
LIMITS: dict[str, int] = {
    "/api/v1/auth/login": 10,
    "/api/v1/auth/register": 5,
    # All token paths share one bucket so guessing tokens is throttled
    "/api/v1/invitations": 20,
}


def _client_key(request: Request) -> str:
    """Prefer X-Forwarded-For when behind a proxy."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host or "unknown"
    return "unknown"


def _clean_old(bucket: list[float], now: float) -> None:
    cutoff = now - WINDOW
    while bucket and bucket[0] < cutoff:
        bucket.pop(0)


def _limit_key(path: str) -> str | None:
    path = path.rstrip("/")
    if path in LIMITS:
        return path
    if path.startswith("/api/v1/invitations/"):
        return "/api/v1/invitations"
    return None


def check_rate_limit(request: Request, key: str) -> None:
    """Raise 429 if the client has exceeded the limit for this bucket."""
    now = time.monotonic()
    bucket = _buckets[(_client_key(request), key)]
    _clean_old(bucket, now)
    if len(bucket) >= LIMITS[key]:
        raise HTTPException(
            status_code=429,
            detail="Too many requests. Please try again later.",
        )
    bucket.append(now)


def reset() -> None:
    """Forget all recorded requests."""
    _buckets.clear()


async def rate_limit_dep(request: Request) -> None:
    """FastAPI dependency: add Depends(rate_limit_dep) to throttled routes."""
    key = _limit_key(request.url.path)
    if key is not None:
        check_rate_limit(request, key)
