"""OAuth credential loading for the Google Calendar API."""
import json
import logging
import os
from typing import Optional

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from processor.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

SCOPES = ['https://www.googleapis.com/auth/calendar']

SETUP_HINT = 'Run "python oauth_setup.py" to authenticate with Google Calendar.'


def load_credentials(token_file: str, token_json: Optional[str] = None) -> Credentials:
    """
    Load stored user credentials, refreshing them when expired.

    Args:
        token_file: Path of the authorized-user token file
        token_json: Token file contents, used instead of token_file when given

    Returns:
        Valid Credentials

    Raises:
        AuthenticationError: If no usable token is available
    """
    try:
        if token_json:
            creds = Credentials.from_authorized_user_info(json.loads(token_json), SCOPES)
        elif os.path.exists(token_file):
            creds = Credentials.from_authorized_user_file(token_file, SCOPES)
        else:
            raise AuthenticationError(f"OAuth token not found at {token_file}. {SETUP_HINT}")
    except (ValueError, KeyError) as e:
        raise AuthenticationError(f"OAuth token is invalid: {e}. {SETUP_HINT}") from e

    if creds.valid:
        return creds

    if not (creds.expired and creds.refresh_token):
        raise AuthenticationError(f"OAuth token cannot be refreshed. {SETUP_HINT}")

    logger.info("Refreshing expired OAuth token")
    try:
        creds.refresh(Request())
    except RefreshError as e:
        raise AuthenticationError(f"OAuth token refresh failed: {e}. {SETUP_HINT}") from e

    if not token_json:
        save_credentials(creds, token_file)
    return creds


def save_credentials(creds: Credentials, token_file: str) -> None:
    """Write credentials back to the token file; failures are logged only."""
    try:
        directory = os.path.dirname(token_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(token_file, 'w') as token:
            token.write(creds.to_json())
    except OSError as e:
        logger.warning(f"Could not save refreshed token to {token_file}: {e}")


def run_consent_flow(credentials_file: str, token_file: str, port: int = 0) -> Credentials:
    """
    Run the interactive OAuth consent flow and store the resulting token.

    Args:
        credentials_file: OAuth client secrets (Desktop app) JSON
        token_file: Where to store the authorized-user token
        port: Local redirect server port (0 picks a free port)

    Returns:
        New Credentials
    """
    if not os.path.exists(credentials_file):
        raise AuthenticationError(
            f"Unable to load {credentials_file}. Create OAuth 2.0 Desktop "
            f"credentials in the Google Cloud Console and save them there."
        )
    flow = InstalledAppFlow.from_client_secrets_file(credentials_file, SCOPES)
    creds = flow.run_local_server(port=port, access_type='offline', prompt='consent')
    save_credentials(creds, token_file)
    logger.info(f"Token stored at {token_file}")
    return creds
