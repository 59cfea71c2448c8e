"""Unit tests for OAuth credential loading."""
import json
from unittest.mock import Mock, patch

import pytest
from google.auth.exceptions import RefreshError

from processor.exceptions import AuthenticationError
from storage.credentials import load_credentials, run_consent_flow

TOKEN = {
    'token': 'access',
    'refresh_token': 'refresh',
    'client_id': 'client',
    'client_secret': 'secret',
    'token_uri': 'https://oauth2.googleapis.com/token',
}


def fake_creds(valid=True, expired=False, refresh_token='refresh'):
    creds = Mock()
    creds.valid = valid
    creds.expired = expired
    creds.refresh_token = refresh_token
    creds.to_json.return_value = json.dumps(TOKEN)
    return creds


class TestLoadCredentials:
    """Test cases for load_credentials."""

    def test_missing_token_file(self, tmp_path):
        """Test a missing token is an authentication failure."""
        with pytest.raises(AuthenticationError, match='oauth_setup.py'):
            load_credentials(str(tmp_path / 'token.json'))

    def test_invalid_inline_token(self, tmp_path):
        """Test malformed inline token JSON is an authentication failure."""
        with pytest.raises(AuthenticationError):
            load_credentials(str(tmp_path / 'token.json'), token_json='not json')

    @patch('storage.credentials.Credentials')
    def test_valid_token_file(self, mock_credentials, tmp_path):
        """Test a valid token is returned without refreshing."""
        token_file = tmp_path / 'token.json'
        token_file.write_text(json.dumps(TOKEN))
        creds = fake_creds()
        mock_credentials.from_authorized_user_file.return_value = creds

        assert load_credentials(str(token_file)) is creds
        creds.refresh.assert_not_called()

    @patch('storage.credentials.Credentials')
    def test_inline_token_preferred(self, mock_credentials, tmp_path):
        """Test inline token JSON is used instead of the file."""
        creds = fake_creds()
        mock_credentials.from_authorized_user_info.return_value = creds

        assert load_credentials(str(tmp_path / 'missing.json'), token_json=json.dumps(TOKEN)) is creds
        mock_credentials.from_authorized_user_file.assert_not_called()

    @patch('storage.credentials.Credentials')
    def test_expired_token_is_refreshed_and_saved(self, mock_credentials, tmp_path):
        """Test expired tokens are refreshed and written back."""
        token_file = tmp_path / 'token.json'
        token_file.write_text('{}')
        creds = fake_creds(valid=False, expired=True)
        mock_credentials.from_authorized_user_file.return_value = creds

        assert load_credentials(str(token_file)) is creds
        creds.refresh.assert_called_once()
        assert json.loads(token_file.read_text()) == TOKEN

    @patch('storage.credentials.Credentials')
    def test_refresh_failure(self, mock_credentials, tmp_path):
        """Test a rejected refresh is an authentication failure."""
        token_file = tmp_path / 'token.json'
        token_file.write_text('{}')
        creds = fake_creds(valid=False, expired=True)
        creds.refresh.side_effect = RefreshError('invalid_grant')
        mock_credentials.from_authorized_user_file.return_value = creds

        with pytest.raises(AuthenticationError):
            load_credentials(str(token_file))

    @patch('storage.credentials.Credentials')
    def test_token_without_refresh_token(self, mock_credentials, tmp_path):
        """Test an invalid token that cannot be refreshed fails."""
        token_file = tmp_path / 'token.json'
        token_file.write_text('{}')
        mock_credentials.from_authorized_user_file.return_value = fake_creds(
            valid=False, expired=True, refresh_token=None
        )

        with pytest.raises(AuthenticationError):
            load_credentials(str(token_file))


class TestConsentFlow:
    """Test cases for run_consent_flow."""

    def test_missing_client_secrets(self, tmp_path):
        """Test a missing credentials file is reported."""
        with pytest.raises(AuthenticationError):
            run_consent_flow(str(tmp_path / 'credentials.json'), str(tmp_path / 'token.json'))

    @patch('storage.credentials.InstalledAppFlow')
    def test_consent_flow_stores_token(self, mock_flow_class, tmp_path):
        """Test the consent flow result is saved to the token file."""
        secrets = tmp_path / 'credentials.json'
        secrets.write_text('{}')
        token_file = tmp_path / 'config' / 'token.json'
        creds = fake_creds()
        mock_flow_class.from_client_secrets_file.return_value.run_local_server.return_value = creds

        assert run_consent_flow(str(secrets), str(token_file)) is creds
        assert json.loads(token_file.read_text()) == TOKEN
