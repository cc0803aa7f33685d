import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Optional

from .collaborators import DocumentStore, Identity, IdentityProvider
from .errors import AuthError, InvalidInputError
from .models import Role


logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"
DEFAULT_ROLE = Role.STUDENT


class Session:
    """Signed-in identity plus role, built once and handed to every component.

    ``loading`` stays true until the identity provider delivers its first
    notification, whatever that notification carries.
    """

    def __init__(self, identity_provider: IdentityProvider, store: DocumentStore):
        self.identity_provider = identity_provider
        self._store = store
        self.identity: Optional[Identity] = None
        self.role: Optional[Role] = None
        self.profile: dict = {}
        self._ready = False
        self._unsubscribe: Optional[Callable[[], None]] = None

    @classmethod
    async def restore(cls, identity_provider: IdentityProvider, store: DocumentStore, token: str) -> "Session":
        identity = await identity_provider.resolve(token)
        session = cls(identity_provider, store)
        await session._apply(identity)
        session._ready = True
        return session

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def loading(self) -> bool:
        return not self._ready

    @property
    def authenticated(self) -> bool:
        return self.identity is not None

    @property
    def linked_id(self) -> Optional[str]:
        """Record id whose data a student or parent may see; the uid unless the role record links one."""
        if not self.identity:
            return None
        return self.profile.get("linkedId") or self.identity.uid

    @property
    def greeting(self) -> str:
        if not self.identity:
            return ""
        return f"Welcome, {self.identity.email} ({self.role.value if self.role else ''})"

    async def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = await self.identity_provider.on_identity_change(self._on_identity_change)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def login(self, identifier: str, secret: str) -> Identity:
        if not identifier or not secret:
            raise InvalidInputError("Please enter email and password")
        identity = await self.identity_provider.sign_in(identifier, secret)
        if self.identity is None or self.identity.uid != identity.uid:
            await self._apply(identity)
        logger.info(f"Login: {identity.email} as {self.role.value}")
        return identity

    async def signup(self, identifier: str, secret: str, role, linked_id: Optional[str] = None) -> Identity:
        parsed = Role.parse(role)
        if parsed is None:
            raise InvalidInputError(f"Unknown role: {role}")
        identity = await self.identity_provider.sign_up(identifier, secret)
        profile = {
            "email": identity.email,
            "role": parsed.value,
            "createdAt": datetime.now(timezone.utc).isoformat(),
        }
        if linked_id:
            profile["linkedId"] = linked_id
        await self._store.set(USERS_COLLECTION, identity.uid, profile)
        # A listener may already have run before the role record existed.
        self.identity = identity
        self.role = parsed
        self.profile = profile
        logger.info(f"Signup: {identity.email} as {parsed.value}")
        return identity

    async def logout(self) -> None:
        await self.identity_provider.sign_out(self.identity)
        self._clear()

    def require_identity(self) -> Identity:
        if self.identity is None:
            raise AuthError("Not signed in")
        return self.identity

    async def _on_identity_change(self, identity: Optional[Identity]) -> None:
        if identity is None:
            self._clear()
        else:
            await self._apply(identity)
        if not self._ready:
            self._ready = True
            logger.info("Session ready")

    async def _apply(self, identity: Identity) -> None:
        record = await self._store.get(USERS_COLLECTION, identity.uid) or {}
        self.identity = identity
        self.profile = record
        self.role = Role.parse(record.get("role"), DEFAULT_ROLE)

    def _clear(self) -> None:
        self.identity = None
        self.role = None
        self.profile = {}
