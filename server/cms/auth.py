"""
Identity boundary: turns a bearer token into `Identity(current_user, is_admin)`.

Production verifies Firebase Auth ID tokens; development and tests use a
static token table from settings.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Protocol

from firebase_admin import auth as firebase_auth

from cms.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class User:
    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None


@dataclass(frozen=True)
class Identity:
    current_user: Optional[User]
    is_admin: bool

    @classmethod
    def anonymous(cls) -> "Identity":
        return cls(current_user=None, is_admin=False)


class IdentityVerifier(Protocol):
    def verify(self, token: str) -> Optional[User]:
        """Returns the user for a valid token, None otherwise."""
        ...


class StaticTokenVerifier:
    """Maps fixed tokens to email addresses; for local runs and tests."""

    def __init__(self, tokens: Dict[str, str]):
        self.tokens = dict(tokens)

    def verify(self, token: str) -> Optional[User]:
        email = self.tokens.get(token)
        if email is None:
            return None
        return User(uid=email, email=email)


class FirebaseTokenVerifier:
    """Verifies Firebase Auth ID tokens (Google sign-in on the site)."""

    def verify(self, token: str) -> Optional[User]:
        try:
            claims = firebase_auth.verify_id_token(token)
        except firebase_auth.CertificateFetchError as e:
            raise StoreUnavailableError("Verifying sign-in", e) from e
        except (ValueError, firebase_auth.InvalidIdTokenError) as e:
            logger.info("Rejected ID token: %s", e)
            return None
        return User(
            uid=claims["uid"],
            email=claims.get("email"),
            display_name=claims.get("name"),
        )


class AdminPolicy:
    """Admins are signed-in users whose email is on the allow-list."""

    def __init__(self, admin_emails: Iterable[str]):
        self.admin_emails = {e.strip().lower() for e in admin_emails if e.strip()}

    def identity_for(self, user: Optional[User]) -> Identity:
        if user is None:
            return Identity.anonymous()
        is_admin = bool(user.email) and user.email.lower() in self.admin_emails
        return Identity(current_user=user, is_admin=is_admin)
