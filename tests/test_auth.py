"""
Unit tests for the password gate and the magic-link sign-in.
"""

import pytest
from unittest.mock import MagicMock

import requests

from core.auth import MagicLinkAuth, verify_password
from core.exceptions import AuthError


@pytest.mark.parametrize("candidate,expected,result", [
    ("s3cret", "s3cret", True),
    ("wrong", "s3cret", False),
    ("", "s3cret", False),
    (None, "s3cret", False),
    ("", "", False),
    ("anything", None, False),
])
def test_verify_password(candidate, expected, result):
    assert verify_password(candidate, expected) is result


class TestMagicLinkAuth:
    """Test cases for MagicLinkAuth class."""

    @pytest.fixture
    def session(self):
        return MagicMock()

    @pytest.fixture
    def auth(self, session):
        return MagicLinkAuth("https://example.test", "anon-key", session=session)

    def test_send_magic_link(self, auth, session):
        session.post.return_value = MagicMock(content=b"{}", **{"json.return_value": {}})

        auth.send_magic_link(" yohan@example.com ")

        args, kwargs = session.post.call_args
        assert args[0] == "https://example.test/auth/v1/otp"
        assert kwargs["json"] == {"email": "yohan@example.com", "create_user": True}
        assert kwargs["headers"]["apikey"] == "anon-key"

    def test_send_magic_link_invalid_email(self, auth, session):
        with pytest.raises(AuthError):
            auth.send_magic_link("not-an-email")
        session.post.assert_not_called()

    def test_verify_code(self, auth, session):
        session.post.return_value = MagicMock(content=b"...", **{"json.return_value": {
            "access_token": "token-1",
            "user": {"id": "user-1", "email": "yohan@example.com"},
        }})

        identity = auth.verify_code("yohan@example.com", " 123456 ")

        assert identity.user_id == "user-1"
        assert identity.access_token == "token-1"
        args, kwargs = session.post.call_args
        assert args[0] == "https://example.test/auth/v1/verify"
        assert kwargs["json"] == {"type": "email", "email": "yohan@example.com", "token": "123456"}

    def test_verify_code_without_session(self, auth, session):
        session.post.return_value = MagicMock(content=b"...", **{"json.return_value": {"user": None}})

        with pytest.raises(AuthError):
            auth.verify_code("yohan@example.com", "000000")

    def test_provider_error(self, auth, session):
        response = MagicMock()
        response.raise_for_status.side_effect = requests.exceptions.HTTPError("403")
        session.post.return_value = response

        with pytest.raises(AuthError):
            auth.verify_code("yohan@example.com", "000000")
