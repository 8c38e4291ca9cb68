"""Google credentials for the Calendar connector.

The credentials file is either

* a service-account key (``"type": "service_account"``), optionally acting
  as a Workspace user through domain-wide delegation (``subject``), or
* an authorized-user token file (client id, client secret and refresh
  token) as written by the installed-app OAuth flow.

Both kinds refresh their access token on demand, so a long-running server
never holds an expired token.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from google.auth.credentials import Credentials as BaseCredentials
from google.auth.transport.requests import Request
from google.oauth2 import service_account
from google.oauth2.credentials import Credentials

logger = logging.getLogger(__name__)

CALENDAR_SCOPES = ["https://www.googleapis.com/auth/calendar.readonly"]
SERVICE_ACCOUNT_TYPE = "service_account"


def load_credentials(
    path: str | Path,
    scopes: list[str] | None = None,
    subject: str | None = None,
) -> BaseCredentials:
    """Load refreshable credentials from *path*.

    Raises ``FileNotFoundError`` when the file is missing and ``ValueError``
    when it is not a usable credentials file.
    """
    path = Path(path)
    scopes = scopes or CALENDAR_SCOPES
    if not path.exists():
        raise FileNotFoundError(f"Google credentials file not found at {path}")

    info = json.loads(path.read_text(encoding="utf-8"))
    if info.get("type") == SERVICE_ACCOUNT_TYPE:
        creds = service_account.Credentials.from_service_account_info(info, scopes=scopes)
        if subject:
            creds = creds.with_subject(subject)
        logger.info(
            "Loaded service-account credentials for %s%s",
            creds.service_account_email, f" acting as {subject}" if subject else "",
        )
        return creds

    creds = Credentials.from_authorized_user_info(info, scopes)
    if creds.expired and creds.refresh_token:
        logger.info("Refreshing expired Google credentials from %s", path)
        creds.refresh(Request())
    return creds
