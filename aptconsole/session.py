# Simulated authentication: the "logged in" user is a record picked from the user list
# and kept in durable storage. There is no token issuing; the optional bearer token is
# whatever was stored, and a 401 from upstream clears it together with the subject.
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .errors import SessionExpired, TransportFailure, ApiError, UserNotFound
from .mutations import MutationPipeline, MutationResult
from .notifications import Notifier
from .resources import ResourceClient
from .screens import navigation_for
from .storage import TOKEN_KEY, USER_KEY, DurableStorage

logger = logging.getLogger("aptconsole.session")


def role_flags(user: Optional[Dict[str, Any]]) -> Dict[str, bool]:
    """Capability flags derived from the subject's role; never stored separately."""
    role = (user or {}).get("role")
    return {
        "is_admin": role == "ADMIN",
        "is_seller": role == "SELLER",
        "is_agent": role == "AGENT",
        "is_user": role == "USER",
    }


def describe(user: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "authenticated": user is not None,
        "user": user,
        **role_flags(user),
        "navigation": navigation_for((user or {}).get("role")),
    }


class RegistrationFailed(Exception):
    def __init__(self, result: MutationResult) -> None:
        super().__init__(result.message)
        self.result = result


class SessionShim:
    """
    Process-wide session subject.

    Lifecycle:
    - loaded from durable storage when constructed (startup)
    - replaced wholesale by login/register/update_user
    - cleared by logout or by an upstream 401 (expire)
    """

    def __init__(self, storage: DurableStorage, notifier: Notifier) -> None:
        self._storage = storage
        self._notifier = notifier
        self._subject: Optional[Dict[str, Any]] = None
        self.client: Optional[ResourceClient] = None
        self.pipeline: Optional[MutationPipeline] = None
        self._load()

    def bind(self, client: ResourceClient, pipeline: MutationPipeline) -> None:
        self.client = client
        self.pipeline = pipeline

    def _load(self) -> None:
        saved = self._storage.get_json(USER_KEY)
        self._subject = saved if isinstance(saved, dict) else None
        if saved is not None and self._subject is None:
            self._storage.remove_item(USER_KEY)

    def _persist(self, user: Dict[str, Any]) -> None:
        # Passwords are write-only; never keep one in the stored subject
        subject = {k: v for k, v in user.items() if k != "password"}
        self._storage.set_json(USER_KEY, subject)
        self._subject = subject

    # Queries
    def current_user(self) -> Optional[Dict[str, Any]]:
        return dict(self._subject) if self._subject is not None else None

    @property
    def is_authenticated(self) -> bool:
        return self._subject is not None

    @property
    def role(self) -> Optional[str]:
        return (self._subject or {}).get("role")

    def flags(self) -> Dict[str, bool]:
        return role_flags(self._subject)

    def navigation(self) -> List[Dict[str, str]]:
        return navigation_for(self.role)

    def _bound(self) -> MutationPipeline:
        if self.client is None or self.pipeline is None:
            raise RuntimeError("SessionShim.bind() must be called first")
        return self.pipeline

    async def _find_by_email(self, email: Optional[str]) -> Optional[Dict[str, Any]]:
        wanted = (email or "").strip().lower()
        users = await self.client.list("users")
        return next(
            (u for u in users if isinstance(u.get("email"), str) and u["email"].lower() == wanted),
            None,
        )

    # Transitions
    async def login(self, email: str) -> Dict[str, Any]:
        """Anonymous -> Authenticated: first user whose email matches, case-insensitively."""
        self._bound()
        try:
            found = await self._find_by_email(email)
        except SessionExpired:
            raise
        except (ApiError, TransportFailure) as exc:
            message = (exc.server_message if isinstance(exc, ApiError) else None) or "Login failed"
            self._notifier.error(message)
            raise
        if found is None:
            logger.info("session.login.not_found")
            self._notifier.error("No user with that email")
            raise UserNotFound("No user with that email")
        self._persist(found)
        logger.info("session.login user_id=%s role=%s", found.get("id"), found.get("role"))
        self._notifier.success("Login successful!")
        return self.current_user()

    async def register(self, user_data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Create a user (role defaults to USER) and take it as the session subject.

        When the server answers without the created record, the user is looked up by
        email. If that fails too, the account exists but nobody is logged in and None
        is returned.
        """
        pipeline = self._bound()
        values = {k: v for k, v in (user_data or {}).items() if v is not None}
        values.setdefault("role", "USER")
        result = await pipeline.create(
            "users", values,
            success="Registration successful!",
            failure="Registration failed",
        )
        if not result.ok:
            raise RegistrationFailed(result)

        created = result.entity
        if not created or created.get("id") is None:
            try:
                created = await self._find_by_email(values.get("email"))
            except (ApiError, TransportFailure) as exc:
                logger.warning("session.register.lookup_failed: %s", exc)
                created = None
        if not created or created.get("id") is None or not created.get("role"):
            logger.info("session.register.unresolved email_known=%s", bool(values.get("email")))
            self._notifier.info("Please log in with your new account")
            return None
        self._persist(created)
        logger.info("session.register user_id=%s", created.get("id"))
        return self.current_user()

    def update_user(self, user: Dict[str, Any]) -> Dict[str, Any]:
        """Replace the subject after a profile edit."""
        self._persist(user)
        return self.current_user()

    def logout(self) -> None:
        self._storage.remove_item(USER_KEY)
        self._subject = None
        logger.info("session.logout")
        self._notifier.success("Logged out successfully")

    def set_token(self, token: Optional[str]) -> None:
        if token:
            self._storage.set_item(TOKEN_KEY, token)
        else:
            self._storage.remove_item(TOKEN_KEY)

    def expire(self) -> bool:
        """
        Upstream answered 401: drop the token and the subject.

        Only the first call after credentials were present does anything, so a burst
        of 401s produces a single notification.
        """
        removed_token = self._storage.remove_item(TOKEN_KEY)
        removed_user = self._storage.remove_item(USER_KEY)
        had_subject = self._subject is not None
        self._subject = None
        if not (removed_token or removed_user or had_subject):
            return False
        logger.warning("session.expired")
        self._notifier.error("Session expired. Please log in again.")
        return True
