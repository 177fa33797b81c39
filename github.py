"""GitHub public repository lookup used by ``GET /api/profile/github/{username}``."""
from __future__ import annotations

from typing import Any, AsyncIterator, List

import httpx
import structlog
from fastapi import Depends

import errors
from settings import Settings, get_settings

logger = structlog.get_logger(__name__)

REPOS_PER_PAGE = 5
USER_AGENT = "devconnector"


async def get_github_client(
    settings: Settings = Depends(get_settings),
) -> AsyncIterator[httpx.AsyncClient]:
    """One AsyncClient per request, closed once the response is sent."""
    async with httpx.AsyncClient(
        base_url=settings.github_api_url,
        timeout=settings.github_timeout_seconds,
        headers={"User-Agent": USER_AGENT, "Accept": "application/vnd.github+json"},
    ) as client:
        yield client


async def fetch_repos(
    client: httpx.AsyncClient, username: str, settings: Settings | None = None
) -> List[dict[str, Any]]:
    """Return the user's five oldest public repositories as GitHub sends them."""
    settings = settings or get_settings()
    params = {"per_page": REPOS_PER_PAGE, "sort": "created", "direction": "asc"}
    if settings.github_client_id and settings.github_client_secret:
        params["client_id"] = settings.github_client_id
        params["client_secret"] = settings.github_client_secret

    try:
        resp = await client.get(f"/users/{username}/repos", params=params)
    except httpx.HTTPError as exc:
        logger.error("GitHub request failed", username=username, exc=str(exc))
        raise errors.UpstreamUnavailable()

    if not resp.is_success:
        logger.info("GitHub profile not found", username=username, status_code=resp.status_code)
        raise errors.NotFound("No Github profile found")

    return resp.json()
