import base64
import logging
import os
import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

from typer.testing import CliRunner

from patrefresh.core.errors import (
    ConfigurationError,
    PartialPipelineFailure,
    SigningError,
    UpstreamError,
)
from patrefresh.core.pipeline import RefreshResult
from patrefresh.core.schemas import Installation, InstallationAccount, InstallationToken, RepoPublicKey
from patrefresh.main import app

from helpers import API_URL, app_key_pair, fake_response

runner = CliRunner()


class TestSecretsRefresh(unittest.TestCase):

    @patch("patrefresh.secrets.commands.run_refresh")
    @patch("patrefresh.secrets.commands.load_settings")
    def test_refresh_success(self, mock_load, mock_run):
        mock_run.return_value = RefreshResult(
            key_id="568250167242549743",
            token_expires_at=datetime(2023, 11, 15, tzinfo=timezone.utc),
            published=True,
            status_code=204,
        )

        result = runner.invoke(app, ["secrets", "refresh", "--repo", "octocat/hello-world", "--secret-name", "MY_PAT"])

        self.assertEqual(result.exit_code, 0)
        self.assertIn("Secret refreshed (key id 568250167242549743", result.stdout)
        _, kwargs = mock_load.call_args
        self.assertEqual(kwargs["GITHUB_REPOSITORY"], "octocat/hello-world")
        self.assertEqual(kwargs["SECRET_NAME"], "MY_PAT")
        self.assertIsNone(kwargs["PRIVATE_KEY"])
        self.assertFalse(mock_run.call_args.kwargs["dry_run"])

    @patch("patrefresh.secrets.commands.run_refresh")
    @patch("patrefresh.secrets.commands.load_settings")
    def test_refresh_dry_run(self, mock_load, mock_run):
        mock_run.return_value = RefreshResult(key_id="kid-1", token_expires_at=None, published=False)

        result = runner.invoke(app, ["secrets", "refresh", "--dry-run"])

        self.assertEqual(result.exit_code, 0)
        self.assertIn("Dry run", result.stdout)
        self.assertTrue(mock_run.call_args.kwargs["dry_run"])

    @patch("patrefresh.secrets.commands.run_refresh")
    @patch("patrefresh.secrets.commands.load_settings")
    def test_refresh_failures_print_one_line(self, mock_load, mock_run):
        cases = [
            (UpstreamError("token exchange", "HTTP 401 (Bad credentials)", status_code=401),
             "Upstream error: token exchange: HTTP 401 (Bad credentials)"),
            (SigningError("RS256 signing failed (ValueError)."), "Signing error: RS256 signing failed"),
            (PartialPipelineFailure("secret publish", UpstreamError("secret publish", "HTTP 422", status_code=422)),
             "Partial pipeline failure: secret publish failed"),
        ]
        for error, expected in cases:
            mock_run.side_effect = error
            result = runner.invoke(app, ["secrets", "refresh"])
            self.assertEqual(result.exit_code, 1)
            self.assertIn(expected, result.stdout)
            self.assertEqual(len(result.stdout.strip().splitlines()), 1)

    def test_refresh_without_configuration(self):
        # Empty directory, so no stray .env fills the gaps
        with runner.isolated_filesystem(), patch.dict(os.environ, {}, clear=True):
            result = runner.invoke(app, ["secrets", "refresh"])
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Configuration error", result.stdout)
        self.assertIn("APP_ID", result.stdout)

    def test_refresh_with_missing_key_file(self):
        result = runner.invoke(app, ["secrets", "refresh", "--private-key-file", "/nonexistent/app.pem"])
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Cannot read private key file", result.stdout)


class TestVerboseLogging(unittest.TestCase):
    """--verbose must not let library debug output leak configured identifiers."""

    def setUp(self):
        private_pem, _ = app_key_pair()
        self.env = {
            "APP_ID": "12345",
            "INSTALLATION_ID": "67890",
            "PRIVATE_KEY": private_pem,
            "GITHUB_REPOSITORY": "secret-owner/secret-repo",
            "GITHUB_API_URL": API_URL,
        }
        # Start from a bare root logger so the callback's basicConfig takes effect
        for p in (patch.object(logging.root, "handlers", []), patch.object(logging.root, "level", logging.WARNING)):
            p.start()
            self.addCleanup(p.stop)
        self.addCleanup(logging.getLogger("patrefresh").setLevel, logging.NOTSET)

    @staticmethod
    def _http(method, response):
        # Mimics urllib3, which logs every request line at DEBUG
        def send(url, **kwargs):
            logging.getLogger("urllib3.connectionpool").debug('%s "%s %s HTTP/1.1" %s', API_URL, method, url, response.status_code)
            return response
        return send

    @patch("patrefresh.core.api.requests.put")
    @patch("patrefresh.core.api.requests.get")
    @patch("patrefresh.core.api.requests.post")
    def test_verbose_refresh_hides_identifiers(self, mock_post, mock_get, mock_put):
        public_key = base64.b64encode(bytes(range(32))).decode()
        mock_post.side_effect = self._http("POST", fake_response(201, {"token": "ghs_abc123"}))
        mock_get.side_effect = self._http("GET", fake_response(200, {"key_id": "kid-1", "key": public_key}))
        mock_put.side_effect = self._http("PUT", fake_response(204))

        with runner.isolated_filesystem(), patch.dict(os.environ, self.env, clear=True):
            result = runner.invoke(app, ["--verbose", "secrets", "refresh"])

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Requesting installation token", result.output)
        self.assertIn("Secret refreshed (key id kid-1", result.output)
        self.assertIn("/app/installations/67890/access_tokens", mock_post.call_args.args[0])
        for value in ("67890", "secret-owner/secret-repo", "secret-owner", "ghs_abc123"):
            self.assertNotIn(value, result.output)
        self.assertFalse(logging.getLogger("urllib3").isEnabledFor(logging.DEBUG))
        self.assertTrue(logging.getLogger("patrefresh.core.api").isEnabledFor(logging.DEBUG))


class TestSecretsPublicKey(unittest.TestCase):

    @patch("patrefresh.secrets.commands.api_get_repo_public_key")
    @patch("patrefresh.secrets.commands.mint_installation_token")
    @patch("patrefresh.secrets.commands.load_settings")
    def test_public_key(self, mock_load, mock_mint, mock_get_key):
        mock_load.return_value = MagicMock(GITHUB_REPOSITORY="octo-org/octo-repo")
        mock_mint.return_value = InstallationToken(token="ghs_abc123")
        mock_get_key.return_value = RepoPublicKey(key_id="kid-1", key=b"\x00" * 32)

        result = runner.invoke(app, ["secrets", "public-key"])

        self.assertEqual(result.exit_code, 0)
        self.assertIn("key_id: kid-1", result.stdout)
        self.assertIn("key: AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA=", result.stdout)
        self.assertNotIn("ghs_abc123", result.stdout)
        self.assertEqual(mock_get_key.call_args.args[1], "ghs_abc123")


class TestInstallations(unittest.TestCase):

    @patch("patrefresh.installations.commands.api_list_installations")
    @patch("patrefresh.installations.commands.build_app_jwt", return_value="app.jwt.sig")
    @patch("patrefresh.installations.commands.load_settings")
    def test_list(self, mock_load, mock_jwt, mock_list):
        mock_list.return_value = [
            Installation(id=1, account=InstallationAccount(login="octo-org"), repository_selection="all"),
            Installation(id=2),
        ]

        result = runner.invoke(app, ["installations", "list"])

        self.assertEqual(result.exit_code, 0)
        lines = result.stdout.strip().splitlines()
        self.assertEqual(len(lines), 3)
        self.assertIn("octo-org", lines[1])
        self.assertTrue(lines[2].startswith("2"))

    @patch("patrefresh.installations.commands.api_list_installations", return_value=[])
    @patch("patrefresh.installations.commands.build_app_jwt", return_value="app.jwt.sig")
    @patch("patrefresh.installations.commands.load_settings")
    def test_list_empty(self, mock_load, mock_jwt, mock_list):
        result = runner.invoke(app, ["installations", "list"])
        self.assertEqual(result.exit_code, 0)
        self.assertIn("No installations found.", result.stdout)

    @patch("patrefresh.installations.commands.api_get_repo_installation")
    @patch("patrefresh.installations.commands.build_app_jwt", return_value="app.jwt.sig")
    @patch("patrefresh.installations.commands.load_settings")
    def test_find(self, mock_load, mock_jwt, mock_find):
        mock_find.return_value = Installation(id=67890)

        result = runner.invoke(app, ["installations", "find", "--repo", "octo-org/octo-repo"])

        self.assertEqual(result.exit_code, 0)
        self.assertEqual(result.stdout.strip(), "67890")
        self.assertEqual(mock_find.call_args.args[1:], ("app.jwt.sig", "octo-org/octo-repo"))

    @patch("patrefresh.installations.commands.load_settings")
    def test_find_rejects_bad_repo(self, mock_load):
        result = runner.invoke(app, ["installations", "find", "--repo", "not-a-repo"])
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Configuration error", result.stdout)
        mock_load.assert_not_called()

    @patch("patrefresh.installations.commands.load_settings")
    def test_configuration_error(self, mock_load):
        mock_load.side_effect = ConfigurationError("Missing or invalid configuration: APP_ID (Field required)")
        result = runner.invoke(app, ["installations", "list"])
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Configuration error: Missing or invalid configuration: APP_ID", result.stdout)


if __name__ == "__main__":
    unittest.main()
