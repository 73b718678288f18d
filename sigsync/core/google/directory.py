"""Admin SDK Directory API: list the users of a domain."""
from __future__ import annotations
import logging
from typing import List

import requests

from ..exceptions import CredentialDenied, DirectoryUnavailable, GoogleAPIError
from ..models import Identity
from .client import GoogleClient

logger = logging.getLogger(__name__)

DIRECTORY_USERS_URL = "https://admin.googleapis.com/admin/directory/v1/users"
PAGE_SIZE = 500


class DirectoryService:
    """Fetches domain users through an admin-impersonating client."""

    def __init__(self, client: GoogleClient, users_url: str = DIRECTORY_USERS_URL):
        """Initialize directory service.

        Args:
            client: Client impersonating a Workspace administrator
            users_url: Directory users endpoint
        """
        self.client = client
        self.users_url = users_url

    def fetch_users(self, domain: str) -> List[Identity]:
        """Return every user of ``domain``, following pagination.

        Returns:
            Identities in directory order; empty list when the domain has no users

        Raises:
            DirectoryUnavailable: On any non-success response or network error
        """
        logger.info("Fetching users from domain: %s", domain)
        identities: List[Identity] = []
        page_token = None
        while True:
            params = {"domain": domain, "maxResults": PAGE_SIZE, "projection": "full"}
            if page_token:
                params["pageToken"] = page_token
            try:
                resp = self.client.get(self.users_url, params=params)
            except GoogleAPIError as e:
                raise DirectoryUnavailable(f"Failed to fetch users ({e.status_code}): {e.message}") from e
            except CredentialDenied as e:
                raise DirectoryUnavailable(f"Failed to fetch users: admin token refused: {e.message}") from e
            except requests.RequestException as e:
                raise DirectoryUnavailable(f"Failed to fetch users: {e}") from e

            try:
                data = resp.json() or {}
            except ValueError as e:
                raise DirectoryUnavailable(f"Failed to fetch users: response is not JSON ({e})") from e
            identities.extend(Identity.from_directory_user(user) for user in data.get("users", []))
            page_token = data.get("nextPageToken")
            if not page_token:
                break

        logger.info("Retrieved %d users from domain %s", len(identities), domain)
        return identities

    def check_access(self, domain: str) -> bool:
        """Probe directory access with a one-user listing."""
        try:
            self.client.get(self.users_url, params={"domain": domain, "maxResults": 1})
            return True
        except (GoogleAPIError, CredentialDenied, requests.RequestException) as e:
            logger.warning("Directory access check failed: %s", e)
            return False
