"""Capabilities consumed from external systems.

The rest of the package only talks to these protocols; the SQLAlchemy, filesystem
and HTML-file adapters in ``identity``, ``documents``, ``storage`` and ``sharing``
are one possible set of implementations.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Optional, Protocol


@dataclass(frozen=True)
class Identity:
    uid: str
    email: str
    token: str = ""


IdentityListener = Callable[[Optional[Identity]], Awaitable[None]]


class IdentityProvider(Protocol):
    async def sign_in(self, identifier: str, secret: str) -> Identity: ...

    async def sign_up(self, identifier: str, secret: str) -> Identity: ...

    async def sign_out(self, identity: Optional[Identity] = None) -> None: ...

    async def on_identity_change(self, callback: IdentityListener) -> Callable[[], None]: ...

    async def resolve(self, token: str) -> Identity: ...

    def scoped(self) -> "IdentityProvider":
        """Another client over the same accounts, with its own current identity and listeners."""
        ...


class DocumentStore(Protocol):
    async def list(self, collection: str, filters: Optional[dict[str, Any]] = None) -> list[dict[str, Any]]: ...

    async def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]: ...

    async def add(self, collection: str, fields: dict[str, Any]) -> str: ...

    async def set(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None: ...

    async def delete(self, collection: str, doc_id: str) -> None: ...


@dataclass(frozen=True)
class BlobHandle:
    path: str
    size: int


class BlobStore(Protocol):
    async def upload(self, path: str, data: bytes) -> BlobHandle: ...

    async def get_url(self, handle: BlobHandle) -> str: ...


@dataclass(frozen=True)
class SharedFile:
    path: str
    url: str


class ShareSink(Protocol):
    async def render_to_file(self, markup: str) -> SharedFile: ...

    async def share(self, handle: SharedFile) -> str: ...
