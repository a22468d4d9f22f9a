"""HTTP surface."""

from .app import create_app
from .auth import Authorizer, StaticTokenAuthorizer

__all__ = ["Authorizer", "StaticTokenAuthorizer", "create_app"]
