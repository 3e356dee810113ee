"""
Email/password sign-in against Firebase Auth, plus an in-memory stand-in.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol

import requests

from cardshelf.errors import AuthError

logger = logging.getLogger(__name__)

INVALID_CREDENTIAL = "auth/invalid-credential"
USER_NOT_FOUND = "auth/user-not-found"
WRONG_PASSWORD = "auth/wrong-password"
TOO_MANY_REQUESTS = "auth/too-many-requests"
NETWORK_FAILED = "auth/network-request-failed"

AUTH_ERROR_MESSAGES = (
    (INVALID_CREDENTIAL, "Email or password is incorrect"),
    (USER_NOT_FOUND, "No user with this email"),
    (WRONG_PASSWORD, "Wrong password"),
    (TOO_MANY_REQUESTS, "Too many attempts, try again later"),
)
DEFAULT_AUTH_MESSAGE = "Sign-in failed"

# Identity Toolkit error strings -> Firebase client SDK codes.
_PROVIDER_CODES = {
    "INVALID_LOGIN_CREDENTIALS": INVALID_CREDENTIAL,
    "INVALID_EMAIL": INVALID_CREDENTIAL,
    "EMAIL_NOT_FOUND": USER_NOT_FOUND,
    "INVALID_PASSWORD": WRONG_PASSWORD,
    "TOO_MANY_ATTEMPTS_TRY_LATER": TOO_MANY_REQUESTS,
    "USER_DISABLED": "auth/user-disabled",
}

SIGN_IN_URL = "https://identitytoolkit.googleapis.com/v1/accounts:signInWithPassword"
REQUEST_TIMEOUT = 15


def friendly_auth_message(error: AuthError) -> str:
    """Map a provider failure to the message shown to the operator."""
    code = error.code or ""
    for known_code, message in AUTH_ERROR_MESSAGES:
        if known_code in code:
            return message
    return error.message or DEFAULT_AUTH_MESSAGE


@dataclass(frozen=True)
class AuthSession:
    uid: str
    email: str
    id_token: str


class AuthClient(Protocol):
    def sign_in(self, email: str, password: str) -> AuthSession:
        ...

    def sign_out(self, session: AuthSession) -> None:
        ...


@dataclass
class InMemoryAuthClient:
    """
    Accounts held in a dict. Repeated failures for one email lock it out
    the way the hosted provider rate-limits.
    """

    accounts: Dict[str, str] = field(default_factory=dict)
    max_failures: int = 5
    failures: Dict[str, int] = field(default_factory=dict)
    signed_out: list = field(default_factory=list)

    def sign_in(self, email: str, password: str) -> AuthSession:
        if self.failures.get(email, 0) >= self.max_failures:
            raise AuthError(TOO_MANY_REQUESTS, "Too many failed attempts")
        expected = self.accounts.get(email)
        if expected is None:
            self.failures[email] = self.failures.get(email, 0) + 1
            raise AuthError(USER_NOT_FOUND, "There is no user record for this email")
        if expected != password:
            self.failures[email] = self.failures.get(email, 0) + 1
            raise AuthError(WRONG_PASSWORD, "The password is invalid")
        self.failures.pop(email, None)
        return AuthSession(
            uid=uuid.uuid5(uuid.NAMESPACE_URL, email).hex,
            email=email,
            id_token=uuid.uuid4().hex,
        )

    def sign_out(self, session: AuthSession) -> None:
        self.signed_out.append(session.uid)


@dataclass
class FirebaseAuthClient:
    """Firebase Auth via the Identity Toolkit REST API."""

    api_key: str
    timeout: int = REQUEST_TIMEOUT

    def sign_in(self, email: str, password: str) -> AuthSession:
        try:
            response = requests.post(
                SIGN_IN_URL,
                params={"key": self.api_key},
                json={
                    "email": email,
                    "password": password,
                    "returnSecureToken": True,
                },
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise AuthError(NETWORK_FAILED, str(exc)) from exc

        if response.ok:
            payload = response.json()
            return AuthSession(
                uid=payload["localId"],
                email=payload.get("email", email),
                id_token=payload["idToken"],
            )

        raw = _provider_error(response)
        reason = raw.split(" : ", 1)[0].strip()
        code = _PROVIDER_CODES.get(reason, f"auth/{reason.lower().replace('_', '-')}")
        logger.info("Sign-in rejected for %s: %s", email, reason)
        raise AuthError(code, raw)

    def sign_out(self, session: AuthSession) -> None:
        # ID tokens are stateless; dropping the session is all sign-out needs.
        logger.info("Signed out %s", session.email)


def _provider_error(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or DEFAULT_AUTH_MESSAGE
    error: Optional[dict] = payload.get("error") if isinstance(payload, dict) else None
    if not error:
        return DEFAULT_AUTH_MESSAGE
    return str(error.get("message") or DEFAULT_AUTH_MESSAGE)
