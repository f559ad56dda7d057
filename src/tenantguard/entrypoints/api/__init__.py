"""FastAPI integration."""

from .deps import PrincipalContext, require_privilege
from .errors import register_exception_handlers

__all__ = ["PrincipalContext", "register_exception_handlers", "require_privilege"]
