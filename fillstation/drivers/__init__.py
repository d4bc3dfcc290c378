"""Remote authority backends for the fill session controller."""

from .authority import RemoteAuthority, RemoteAuthorityError
from .http_authority import HttpAuthority

__all__ = [
    "RemoteAuthority",
    "RemoteAuthorityError",
    "HttpAuthority",
]
