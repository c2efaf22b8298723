"""
Profiles API Client for LeadStitch Server Integration.

Lists the profiles found for a business requirement and requests email
enrichment for them.
"""

import logging
from typing import Any, Dict, List, Sequence

from .base_client import LeadStitchAPIClient
from .exceptions import APIClientError

logger = logging.getLogger(__name__)


class ProfilesAPIClient(LeadStitchAPIClient):
    """Client for profile listing and enrichment operations."""

    async def list_profiles(self, requirement_id: str) -> List[Dict[str, Any]]:
        """List profiles found for a business requirement.

        Transient failures are retried with backoff. A non-list response body
        is treated as "no profiles".
        """
        response = await self._request_with_retry(
            "GET", "/profiles", params={"requirementId": requirement_id}
        )
        data = self._json_body(response, "profile listing")
        if not isinstance(data, list):
            logger.debug(
                f"Profile listing for requirement {requirement_id} was not a list"
            )
            return []
        return [item for item in data if isinstance(item, dict)]

    async def enrich_with_emails(self, profile_ids: Sequence[int]) -> Dict[str, Any]:
        """Request email enrichment for the given profile ids.

        Raises:
            APIClientError: If the server rejects the request
            NetworkError: If network request fails
        """
        if not profile_ids:
            raise APIClientError("No profile ids given for enrichment")

        response = await self.post(
            "/profiles/enrich-emails", json={"profileIds": list(profile_ids)}
        )
        data = self._json_body(response, "email enrichment")
        return dict(data) if isinstance(data, dict) else {}
