"""Google Workspace collaborators.

Architecture:
- credentials.py: Service account key and JWT-bearer token grant
- client.py: HTTP client with authentication and auto-refresh
- directory.py: Admin SDK user listing (directory provider)
- gmail.py: Send-as signature read/write (mailbox settings provider)
- drive.py: Drive file download (remote templates)

Usage:
    from sigsync.core.google import ServiceAccountCredentials, ServiceAccountKey

    creds = ServiceAccountCredentials(ServiceAccountKey.from_dict(key_json))
    gmail = GmailSettingsService(creds)
    current = gmail.read_signature("alice@example.com")
"""
from .client import GoogleClient, create_client_with_token, REQUEST_TIMEOUT
from .credentials import (
    ServiceAccountCredentials,
    ServiceAccountKey,
    AccessToken,
    GMAIL_SETTINGS_SCOPE,
    DIRECTORY_READONLY_SCOPE,
    DRIVE_READONLY_SCOPE,
)
from .directory import DirectoryService
from .drive import DriveService
from .gmail import GmailSettingsService

__all__ = [
    "GoogleClient",
    "create_client_with_token",
    "REQUEST_TIMEOUT",
    "ServiceAccountCredentials",
    "ServiceAccountKey",
    "AccessToken",
    "GMAIL_SETTINGS_SCOPE",
    "DIRECTORY_READONLY_SCOPE",
    "DRIVE_READONLY_SCOPE",
    "DirectoryService",
    "DriveService",
    "GmailSettingsService",
]
