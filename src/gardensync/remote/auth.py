"""
Authentication session seam.

Sign-in itself happens elsewhere; sync only needs to know who is signed in
and to obtain a fresh credential before writing.
"""

from abc import ABC, abstractmethod
from typing import Optional

from ..core.exceptions import NotAuthenticatedError


class AuthSession(ABC):
    """The signed-in user as seen by the sync layer."""

    @abstractmethod
    def current_user_id(self) -> Optional[str]:
        """Id of the signed-in user, or None."""
        pass

    @abstractmethod
    def refresh_token(self) -> str:
        """
        Obtain a freshly refreshed credential.

        Raises:
            NotAuthenticatedError: If no user is signed in or refresh fails
        """
        pass

    def require_user(self) -> str:
        """Return the signed-in user id, refreshing the credential first."""
        user_id = self.current_user_id()
        if not user_id:
            raise NotAuthenticatedError("Not authenticated. Please sign in first.")
        self.refresh_token()
        return user_id


class StaticSession(AuthSession):
    """A session with a fixed user and token (tests, scripts, service tokens)."""

    def __init__(self, user_id: Optional[str], token: str = ""):
        self.user_id = user_id
        self.token = token

    def current_user_id(self) -> Optional[str]:
        return self.user_id

    def refresh_token(self) -> str:
        if not self.user_id:
            raise NotAuthenticatedError("Not authenticated. Please sign in first.")
        return self.token
