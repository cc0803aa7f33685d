import logging
import re
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .collaborators import Identity, IdentityListener
from .config import Settings
from .errors import AuthError, CollaboratorError, InvalidInputError
from .models import Account, RevokedToken
from .security import create_access_token, decode_access_token, hash_password, verify_password


logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")
MIN_PASSWORD_LENGTH = 6


def normalize_email(value: str) -> str:
    normalized = (value or "").lower().strip()
    if not EMAIL_PATTERN.match(normalized):
        raise InvalidInputError("Invalid email format")
    return normalized


class SqlIdentityProvider:
    """Email/password identity provider backed by the ``school_accounts`` table.

    Each instance is one client: it tracks the identity signed in through it and
    notifies its listeners on every transition, delivering the current state once
    on subscription. ``scoped()`` opens another client over the same accounts, so
    one HTTP caller signing in or out never moves another client's state.
    """

    def __init__(self, session_factory: sessionmaker, settings: Settings):
        self._session_factory = session_factory
        self._settings = settings
        self._current: Optional[Identity] = None
        self._listeners: list[IdentityListener] = []

    @property
    def current(self) -> Optional[Identity]:
        return self._current

    def scoped(self) -> "SqlIdentityProvider":
        return SqlIdentityProvider(self._session_factory, self._settings)

    async def sign_in(self, identifier: str, secret: str) -> Identity:
        try:
            email = normalize_email(identifier)
        except InvalidInputError as exc:
            raise AuthError("Invalid credentials") from exc
        try:
            with self._session_factory() as db:
                account = db.query(Account).filter(Account.email == email).first()
        except SQLAlchemyError as exc:
            raise CollaboratorError("Identity provider unavailable") from exc
        if not account or not verify_password(secret or "", account.password_hash):
            raise AuthError("Invalid credentials")
        identity = self._issue(account)
        await self._transition(identity)
        return identity

    async def sign_up(self, identifier: str, secret: str) -> Identity:
        email = normalize_email(identifier)
        if not secret or len(secret) < MIN_PASSWORD_LENGTH:
            raise InvalidInputError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        try:
            with self._session_factory() as db:
                if db.query(Account).filter(Account.email == email).first():
                    raise AuthError("Email already in use")
                account = Account(email=email, password_hash=hash_password(secret))
                db.add(account)
                db.commit()
                db.refresh(account)
        except SQLAlchemyError as exc:
            raise CollaboratorError("Identity provider unavailable") from exc
        identity = self._issue(account)
        await self._transition(identity)
        return identity

    async def sign_out(self, identity: Optional[Identity] = None) -> None:
        """Ends ``identity`` (or this client's current one); its token stops resolving."""
        target = identity or self._current
        if target is not None and target.token:
            self._revoke(target.token)
        await self._transition(None)

    async def on_identity_change(self, callback: IdentityListener) -> Callable[[], None]:
        self._listeners.append(callback)
        await callback(self._current)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def resolve(self, token: str) -> Identity:
        payload = decode_access_token(self._settings, token)
        try:
            with self._session_factory() as db:
                revoked = db.get(RevokedToken, payload["jti"])
                account = db.get(Account, payload["sub"])
        except SQLAlchemyError as exc:
            raise CollaboratorError("Identity provider unavailable") from exc
        if revoked:
            raise AuthError("Signed out, please log in again")
        if not account:
            raise AuthError("Invalid user")
        return Identity(uid=account.uid, email=account.email, token=token)

    def _revoke(self, token: str) -> None:
        try:
            payload = decode_access_token(self._settings, token)
        except AuthError:
            # Expired or malformed tokens already fail to resolve.
            return
        now = datetime.utcnow()
        try:
            with self._session_factory() as db:
                db.query(RevokedToken).filter(RevokedToken.expires_at < now).delete()
                if db.get(RevokedToken, payload["jti"]) is None:
                    db.add(
                        RevokedToken(
                            jti=payload["jti"],
                            uid=payload["sub"],
                            expires_at=datetime.fromtimestamp(payload["exp"], timezone.utc).replace(tzinfo=None),
                        )
                    )
                db.commit()
        except SQLAlchemyError as exc:
            raise CollaboratorError("Identity provider unavailable") from exc
        logger.info(f"Revoked token for {payload['email']}")

    def _issue(self, account: Account) -> Identity:
        token = create_access_token(self._settings, subject=account.uid, email=account.email)
        return Identity(uid=account.uid, email=account.email, token=token)

    async def _transition(self, identity: Optional[Identity]) -> None:
        self._current = identity
        logger.info(f"Identity changed: {identity.email if identity else 'signed out'}")
        for listener in list(self._listeners):
            await listener(identity)
