"""
Access control: the shared application password and the email magic-link
sign-in that unlocks the remote mirror.
"""

import hmac
import logging
from typing import Optional

import requests

from .exceptions import AuthError
from .models import RemoteIdentity

logger = logging.getLogger(__name__)


def verify_password(candidate: Optional[str], expected: Optional[str]) -> bool:
    """Compare a passphrase with the configured one in constant time.

    An unset expected password never matches.
    """
    if not expected:
        logger.warning("No application password configured; refusing login")
        return False
    return hmac.compare_digest((candidate or "").encode("utf-8"), expected.encode("utf-8"))


class MagicLinkAuth:
    """Email one-time login against the hosted auth provider."""

    def __init__(self, base_url: str, anon_key: str, timeout: float = 20.0,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = timeout
        self.session = session or requests.Session()
        self.logger = logger

    def _post(self, path: str, payload: dict) -> dict:
        url = f"{self.base_url}/auth/v1/{path}"
        try:
            response = self.session.post(
                url,
                json=payload,
                headers={"apikey": self.anon_key, "Content-Type": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            self.logger.error(f"Auth request to {path} failed: {str(e)}")
            raise AuthError(f"Auth request failed: {str(e)}") from e
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise AuthError("Auth provider returned invalid JSON") from e

    def send_magic_link(self, email: str, redirect_to: Optional[str] = None) -> None:
        """Ask the provider to email a sign-in link and code."""
        email = (email or "").strip()
        if "@" not in email:
            raise AuthError("A valid email address is required")
        payload = {"email": email, "create_user": True}
        if redirect_to:
            payload["options"] = {"email_redirect_to": redirect_to}
        self._post("otp", payload)
        self.logger.info(f"Magic link sent to {email}")

    def verify_code(self, email: str, code: str) -> RemoteIdentity:
        """Exchange the emailed one-time code for a session.

        Returns:
            RemoteIdentity of the signed-in user
        """
        data = self._post("verify", {
            "type": "email",
            "email": (email or "").strip(),
            "token": (code or "").strip(),
        })
        user = data.get("user") or {}
        if not data.get("access_token") or not user.get("id"):
            raise AuthError("Auth provider did not return a session")
        self.logger.info(f"Signed in remote user {user['id']}")
        return RemoteIdentity(
            user_id=user["id"],
            email=user.get("email") or email,
            access_token=data["access_token"],
        )
