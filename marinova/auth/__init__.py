"""Authentication / session helpers.

What lives here:

- Users table (email/password hash + verification state + credits)
- Stateless JWT session tokens, 7-day lifetime, sent as
  `Authorization: Bearer <token>`

Logout is a client-side token discard; there is no revocation list.
"""

from .deps import get_current_user_id
from .service import AuthService

__all__ = [
    "AuthService",
    "get_current_user_id",
]
