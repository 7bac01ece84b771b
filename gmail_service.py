"""
Builds an authenticated Gmail API client for the auto-reply agent.

These utilities rely on google-auth and google-api-python-client. Install them with:
    pip install google-api-python-client google-auth google-auth-httplib2 google-auth-oauthlib
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Optional

import httplib2
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google.oauth2.service_account import Credentials as ServiceAccountCredentials
from google_auth_httplib2 import AuthorizedHttp
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build

# - Modify covers reading messages/threads, creating labels and relabelling threads
# - Send is needed for the reply itself
GMAIL_MODIFY_SCOPE = "https://www.googleapis.com/auth/gmail.modify"
GMAIL_SEND_SCOPE = "https://www.googleapis.com/auth/gmail.send"
GMAIL_AUTOREPLY_SCOPES = [GMAIL_MODIFY_SCOPE, GMAIL_SEND_SCOPE]

DEFAULT_HTTP_TIMEOUT = 60

logger = logging.getLogger(__name__)


class CredentialsUnavailableError(RuntimeError):
    """Raised when no usable Gmail credentials exist and the interactive flow is disabled."""


def _persist_token(credentials: Credentials, token_file: Optional[str]) -> None:
    if not token_file:
        return
    try:
        Path(token_file).write_text(credentials.to_json(), encoding="utf-8")
    except OSError as exc:
        # The refreshed token still works for this process; the next start refreshes again.
        logger.warning("Could not write Gmail token to %s: %s", token_file, exc)


def load_oauth_credentials(
    *,
    oauth_client_secret: Optional[str],
    oauth_token_file: Optional[str],
    scopes: Iterable[str] = GMAIL_AUTOREPLY_SCOPES,
    allow_oauth_flow: bool = False,
    oauth_flow_mode: Optional[str] = None,
) -> Credentials:
    """
    Return valid user credentials, refreshing or running the installed-app flow as needed.

    A refreshed or newly minted token is written back to oauth_token_file.
    """
    scopes = list(scopes)
    credentials: Optional[Credentials] = None
    if oauth_token_file and os.path.exists(oauth_token_file):
        credentials = Credentials.from_authorized_user_file(oauth_token_file, scopes=scopes)

    if credentials and credentials.valid:
        return credentials

    if credentials and credentials.expired and credentials.refresh_token:
        logger.info("Refreshing expired Gmail token from %s", oauth_token_file)
        credentials.refresh(Request())
        _persist_token(credentials, oauth_token_file)
        return credentials

    if not allow_oauth_flow:
        raise CredentialsUnavailableError(
            "Missing or invalid Gmail OAuth token and interactive OAuth is disabled. "
            "Run bootstrap_gmail_token.py locally to generate a token file, or set GMAIL_ALLOW_OAUTH_FLOW=1."
        )
    if not oauth_client_secret or not os.path.exists(oauth_client_secret):
        raise CredentialsUnavailableError(f"OAuth client secret not found at {oauth_client_secret!r}.")

    flow = InstalledAppFlow.from_client_secrets_file(oauth_client_secret, scopes=scopes)
    chosen_mode = (oauth_flow_mode or os.getenv("GMAIL_OAUTH_FLOW", "local_server")).strip().lower()
    if chosen_mode in {"console", "device", "device_code"}:
        # Headless terminals: print the URL instead of opening a browser
        credentials = flow.run_local_server(port=0, open_browser=False)
    else:
        credentials = flow.run_local_server(port=0)
    _persist_token(credentials, oauth_token_file)
    return credentials


def build_gmail_service(
    *,
    service_account_file: Optional[str] = None,
    delegated_user: Optional[str] = None,
    oauth_client_secret: Optional[str] = None,
    oauth_token_file: Optional[str] = None,
    scopes: Iterable[str] = GMAIL_AUTOREPLY_SCOPES,
    allow_oauth_flow: bool = False,
    oauth_flow_mode: Optional[str] = None,
    http_timeout: int = DEFAULT_HTTP_TIMEOUT,
):
    """
    Create a Gmail API service client.

    Options:
        - Domain-wide delegation: provide service_account_file and the delegated_user email address.
        - OAuth client flow: provide oauth_client_secret and oauth_token_file path for storing refresh tokens.

    Every request made through the client is bounded by http_timeout seconds; an
    expired access token is refreshed transparently by the authorized transport.
    """
    scopes = list(scopes)
    if service_account_file:
        credentials = ServiceAccountCredentials.from_service_account_file(
            service_account_file,
            scopes=scopes,
        )
        if delegated_user:
            credentials = credentials.with_subject(delegated_user)
    else:
        credentials = load_oauth_credentials(
            oauth_client_secret=oauth_client_secret,
            oauth_token_file=oauth_token_file,
            scopes=scopes,
            allow_oauth_flow=allow_oauth_flow,
            oauth_flow_mode=oauth_flow_mode,
        )

    http = AuthorizedHttp(credentials, http=httplib2.Http(timeout=http_timeout))
    return build("gmail", "v1", http=http, cache_discovery=False)


def build_gmail_service_from_settings(settings):
    """Build the client described by an AgentSettings instance."""
    return build_gmail_service(
        service_account_file=settings.service_account_file,
        delegated_user=settings.delegated_user,
        oauth_client_secret=settings.oauth_client_secret,
        oauth_token_file=settings.oauth_token_file,
        allow_oauth_flow=settings.allow_oauth_flow,
        http_timeout=settings.http_timeout,
    )
