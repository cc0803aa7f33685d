from collections.abc import Callable

from fastapi import Depends, Header, Request

from .context import AppContext
from .errors import AuthError, PolicyError
from .models import Role
from .policy import Section, require_mutation, require_view
from .session import Session


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def _parse_token(auth_header: str | None) -> str:
    if not auth_header:
        raise AuthError("Missing Authorization header")
    parts = auth_header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        raise AuthError("Invalid auth scheme")
    return parts[1].strip()


async def get_current_session(
    authorization: str | None = Header(default=None, alias="Authorization"),
    ctx: AppContext = Depends(get_context),
) -> Session:
    return await ctx.restore_session(_parse_token(authorization))


def require_roles(*allowed_roles: Role) -> Callable:
    def dependency(session: Session = Depends(get_current_session)) -> Session:
        if session.role not in allowed_roles:
            raise PolicyError("Insufficient role privileges")
        return session

    return dependency


def require_section(section: Section, mutate: bool = False) -> Callable:
    """Render-time guard; repositories repeat the check when they are called."""

    def dependency(session: Session = Depends(get_current_session)) -> Session:
        if mutate:
            require_mutation(session.role, section)
        else:
            require_view(session.role, section)
        return session

    return dependency
