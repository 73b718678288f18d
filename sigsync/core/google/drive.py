"""Drive API: download user-authored templates stored as Drive files."""
from __future__ import annotations
from urllib.parse import quote

from .client import GoogleClient

DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"


class DriveService:
    """Fetches Drive file contents through an admin-impersonating client."""

    def __init__(self, client: GoogleClient, files_url: str = DRIVE_FILES_URL):
        self.client = client
        self.files_url = files_url.rstrip("/")

    def fetch_file_text(self, file_id: str) -> str:
        """Return a Drive file's content decoded as text.

        Raises:
            GoogleAPIError: On HTTP error (404 for unknown ids)
        """
        resp = self.client.get(
            f"{self.files_url}/{quote(file_id, safe='')}",
            params={"alt": "media", "supportsAllDrives": "true"},
        )
        resp.encoding = resp.encoding or "utf-8"
        return resp.text
