from .app import create_app
from .config import Settings
from .context import AppContext, build_context
from .models import Role
from .policy import Section, compose_sections
from .routes import router


__all__ = ["AppContext", "Role", "Section", "Settings", "build_context", "compose_sections", "create_app", "router"]
