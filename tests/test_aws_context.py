"""Tests for windows_node_installer.aws.context: credentials file, region, identity."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from windows_node_installer.aws.context import (
    AWSContext,
    resolve_credentials_path,
    resolve_region,
)
from windows_node_installer.errors import CredentialsError


def _creds_file(tmp_path):
    path = tmp_path / "credentials"
    path.write_text(
        "[default]\naws_access_key_id = AKIAEXAMPLE\naws_secret_access_key = secret\n",
        encoding="utf-8",
    )
    return path


def _session_with_identity(identity=None, error=None):
    session = MagicMock()
    sts = MagicMock()
    if error is not None:
        sts.get_caller_identity.side_effect = error
    else:
        sts.get_caller_identity.return_value = identity or {
            "Account": "123456789012",
            "Arn": "arn:aws:iam::123456789012:user/ocp",
        }
    session.client.return_value = sts
    return session


# ── resolve_region ───────────────────────────────────────────────────


class TestResolveRegion:
    def test_explicit_wins(self, monkeypatch):
        monkeypatch.setenv("AWS_DEFAULT_REGION", "eu-central-1")
        assert resolve_region("us-west-2") == "us-west-2"

    def test_from_aws_default_region(self, monkeypatch):
        monkeypatch.setenv("AWS_DEFAULT_REGION", "eu-central-1")
        monkeypatch.setenv("AWS_REGION", "ap-southeast-1")
        assert resolve_region() == "eu-central-1"

    def test_from_aws_region(self, monkeypatch):
        monkeypatch.delenv("AWS_DEFAULT_REGION", raising=False)
        monkeypatch.setenv("AWS_REGION", "ap-southeast-1")
        assert resolve_region() == "ap-southeast-1"

    def test_fallback_default(self, monkeypatch):
        monkeypatch.delenv("AWS_DEFAULT_REGION", raising=False)
        monkeypatch.delenv("AWS_REGION", raising=False)
        assert resolve_region() == "us-east-1"


# ── resolve_credentials_path ─────────────────────────────────────────


class TestResolveCredentialsPath:
    def test_existing_file(self, tmp_path):
        path = _creds_file(tmp_path)
        assert resolve_credentials_path(str(path)) == path

    def test_missing_file(self, tmp_path):
        with pytest.raises(CredentialsError, match="failed to find AWS credentials"):
            resolve_credentials_path(str(tmp_path / "missing"))

    def test_directory_rejected(self, tmp_path):
        with pytest.raises(CredentialsError):
            resolve_credentials_path(str(tmp_path))


# ── AWSContext.build ─────────────────────────────────────────────────


class TestAWSContextBuild:
    @patch("windows_node_installer.aws.context._new_session")
    def test_identity_populated(self, mock_new_session, tmp_path):
        path = _creds_file(tmp_path)
        mock_new_session.return_value = _session_with_identity()

        ctx = AWSContext.build(str(path), "default", "us-east-2")

        assert ctx.account_id == "123456789012"
        assert ctx.caller_arn.endswith(":user/ocp")
        assert ctx.region == "us-east-2"
        assert ctx.profile == "default"
        mock_new_session.assert_called_once_with(str(path), "default", "us-east-2")

    @patch("windows_node_installer.aws.context._new_session")
    def test_region_resolved_from_env(self, mock_new_session, tmp_path, monkeypatch):
        monkeypatch.setenv("AWS_DEFAULT_REGION", "eu-west-1")
        mock_new_session.return_value = _session_with_identity()
        ctx = AWSContext.build(str(_creds_file(tmp_path)), "default")
        assert ctx.region == "eu-west-1"

    @patch("windows_node_installer.aws.context._new_session")
    def test_rejected_credentials(self, mock_new_session, tmp_path):
        mock_new_session.return_value = _session_with_identity(
            error=ClientError(
                {"Error": {"Code": "InvalidClientTokenId", "Message": "bad token"}},
                "GetCallerIdentity",
            )
        )
        with pytest.raises(CredentialsError, match="InvalidClientTokenId"):
            AWSContext.build(str(_creds_file(tmp_path)), "default", "us-east-1")

    def test_missing_credentials_file(self, tmp_path):
        with pytest.raises(CredentialsError):
            AWSContext.build(str(tmp_path / "nope"), "default", "us-east-1")

    def test_client_uses_session(self):
        session = MagicMock()
        ctx = AWSContext("/c", "default", "us-east-1", _session=session)
        ctx.client("ec2")
        session.client.assert_called_once_with("ec2")
