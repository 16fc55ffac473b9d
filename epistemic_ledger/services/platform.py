"""Client for platform-owned data: reputation, post authorship, admin roles."""

import logging
from typing import Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from epistemic_ledger.config import settings

logger = logging.getLogger(__name__)


class PlatformClient:
    """Read-only lookups against the platform's user and post services."""

    def __init__(self, client: Optional[httpx.Client] = None):
        """Initialize the platform client."""
        self.default_reputation = settings.DEFAULT_REPUTATION
        self.client = client or httpx.Client(
            base_url=settings.PLATFORM_API_URL, timeout=settings.PLATFORM_TIMEOUT
        )

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
    )
    def _get(self, path: str) -> Optional[dict]:
        response = self.client.get(path)
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    def get_reputation(self, user_id: str) -> float:
        """
        Fetch a user's reputation score on a 0-100 scale.

        Unknown users get DEFAULT_REPUTATION. The value is clamped so a
        misbehaving upstream cannot produce out-of-range vote weights.
        """
        data = self._get(f"/users/{user_id}/reputation")
        if not data or data.get("reputationScore") is None:
            logger.info(f"No reputation for user {user_id}, using default")
            return self.default_reputation

        score = float(data["reputationScore"])
        return max(0.0, min(100.0, score))

    def get_post_author(self, post_id: str) -> Optional[str]:
        """Return the author id of a post, or None if the post is unknown."""
        data = self._get(f"/posts/{post_id}")
        if not data:
            return None
        return data.get("authorId")

    def is_admin(self, user_id: str) -> bool:
        """Whether the user holds the platform admin role."""
        data = self._get(f"/users/{user_id}")
        if not data:
            return False
        return bool(data.get("isAdmin", False))
