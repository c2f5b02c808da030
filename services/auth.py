import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from dotenv import load_dotenv
from supabase import Client, create_client

from services.schemas import Profile, UserRole

# Load environment variables (Supabase project URL and key)
load_dotenv()

logger = logging.getLogger(__name__)

SORT_FIELDS = ("username", "created_at", "plan")


@dataclass
class Notification:
    """A transient message for the user (rendered as a toast by the client)."""
    title: str
    description: str = ""
    variant: str = "default"

    def to_json(self) -> dict:
        return {"title": self.title, "description": self.description, "variant": self.variant}


class AuthError(Exception):
    def __init__(self, notification: Notification):
        super().__init__(notification.description or notification.title)
        self.notification = notification


@dataclass
class AuthState:
    user: Any = None
    session: Any = None
    is_admin: bool = False
    access_token: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None


class AuthService:
    """
    Thin pass-through to the Supabase auth and database APIs.
    Holds no security logic of its own; role checks are delegated to the
    backend's `has_role` function.

    The shared client never holds a user session. Sign-in and sign-up run on
    a throwaway client from client_factory, and every later call identifies
    the user by access token.
    """

    def __init__(self, client: Optional[Client] = None, notify: Optional[Callable[[Notification], None]] = None,
                 client_factory: Optional[Callable[[], Client]] = None):
        if client is None:
            url = os.getenv("SUPABASE_URL")
            key = os.getenv("SUPABASE_KEY")
            if url and key:
                client_factory = client_factory or (lambda: create_client(url, key))
                client = client_factory()
            else:
                logger.warning("SUPABASE_URL / SUPABASE_KEY not set; authentication is unavailable.")
        self.client = client
        self.client_factory = client_factory
        self.notify = notify or self._log_notification

    @staticmethod
    def _log_notification(notification: Notification) -> None:
        logger.info("Notification: %s - %s", notification.title, notification.description)

    def _fail(self, title: str, error: Exception, reraise: bool = True) -> None:
        notification = Notification(title=title, description=str(error), variant="destructive")
        self.notify(notification)
        if reraise:
            raise AuthError(notification) from error

    def _require_client(self) -> Client:
        if self.client is None:
            raise RuntimeError("Authentication service is not configured")
        return self.client

    def _session_client(self) -> Client:
        if self.client_factory is None:
            return self._require_client()
        return self.client_factory()

    # --- Session ---

    def sign_in(self, email: str, password: str) -> AuthState:
        try:
            response = self._session_client().auth.sign_in_with_password({
                "email": email,
                "password": password,
            })
        except Exception as e:
            self._fail("Login failed", e)
        return self._state_for(response.user, response.session)

    def sign_up(self, email: str, password: str, metadata: Optional[Dict[str, Any]] = None) -> AuthState:
        try:
            response = self._session_client().auth.sign_up({
                "email": email,
                "password": password,
                "options": {"data": metadata or {}},
            })
        except Exception as e:
            self._fail("Registration failed", e)
        self.notify(Notification(
            title="Registration successful",
            description="Please check your email to confirm your account.",
        ))
        return self._state_for(response.user, response.session)

    def sign_out(self, access_token: str) -> None:
        """Revokes the sessions of the token's owner; other users stay signed in."""
        try:
            self._require_client().auth.admin.sign_out(access_token)
        except Exception as e:
            self._fail("Sign out failed", e, reraise=False)

    def get_session(self, access_token: str) -> AuthState:
        return self.user_for_token(access_token)

    def user_for_token(self, access_token: str) -> AuthState:
        """Resolves a bearer token to its user; unknown or expired tokens give an anonymous state."""
        try:
            response = self._require_client().auth.get_user(access_token)
        except Exception as e:
            logger.error("Error resolving access token: %s", e)
            return AuthState()
        user = getattr(response, "user", None) if response else None
        return self._state_for(user, None, access_token)

    def on_auth_state_change(self, callback: Callable[[str, AuthState], None]):
        """Registers callback(event, state); returns the backend subscription, or None when unconfigured."""
        if self.client is None:
            logger.warning("Authentication service is not configured; state changes will not be reported.")
            return None

        def listener(event, session):
            user = getattr(session, "user", None) if session else None
            callback(event, self._state_for(user, session))

        return self.client.auth.on_auth_state_change(listener)

    def _state_for(self, user, session, access_token: Optional[str] = None) -> AuthState:
        if user is None:
            return AuthState(session=session)
        access_token = access_token or getattr(session, "access_token", None)
        return AuthState(user=user, session=session, is_admin=self.check_is_admin(user.id),
                         access_token=access_token)

    # --- Roles & profiles ---

    def check_is_admin(self, user_id: str) -> bool:
        # Any failure leaves the user without admin rights.
        try:
            response = self._require_client().rpc("has_role", {
                "user_id": user_id,
                "role": "admin",
            }).execute()
            return bool(response.data)
        except Exception as e:
            logger.error("Error checking admin status: %s", e)
            return False

    def get_profile(self, user_id: Optional[str]) -> Optional[Profile]:
        if not user_id:
            return None
        try:
            response = (
                self._require_client().table("profiles")
                .select("*")
                .eq("id", user_id)
                .single()
                .execute()
            )
            return Profile.model_validate(response.data)
        except Exception as e:
            logger.error("Error fetching profile: %s", e)
            return None

    def get_user_roles(self, user_id: Optional[str]) -> List[UserRole]:
        if not user_id:
            return []
        try:
            response = (
                self._require_client().table("user_roles")
                .select("*")
                .eq("user_id", user_id)
                .execute()
            )
            return [UserRole.model_validate(row) for row in response.data or []]
        except Exception as e:
            logger.error("Error fetching user roles: %s", e)
            return []

    # --- Admin ---

    def list_profiles(self) -> List[Profile]:
        """All profiles, with emails merged in when the key has admin access."""
        try:
            client = self._require_client()
            rows = client.table("profiles").select("*").execute().data or []
        except Exception as e:
            self._fail("Error fetching users", e)

        try:
            auth_users = client.auth.admin.list_users()
        except Exception as e:
            logger.warning("Admin user listing unavailable, using profiles only: %s", e)
            return [Profile.model_validate(row) for row in rows]

        emails = {str(u.id): u.email for u in auth_users or []}
        return [Profile.model_validate({**row, "email": emails.get(str(row.get("id")))}) for row in rows]

    def update_plan(self, user_id: str, plan: str) -> None:
        try:
            self._require_client().table("profiles").update({"plan": plan}).eq("id", user_id).execute()
        except Exception as e:
            self._fail("Error updating plan", e)
        self.notify(Notification(
            title="Plan updated",
            description=f"User's plan has been updated to {plan}.",
        ))


def filter_users(users: List[Profile], query: str) -> List[Profile]:
    needle = (query or "").lower()
    return [
        u for u in users
        if any(needle in (value or "").lower() for value in (u.username, u.full_name, u.email, u.plan))
    ]


def sort_users(users: List[Profile], field: str = "created_at", order: str = "asc") -> List[Profile]:
    if field not in SORT_FIELDS:
        raise ValueError(f"Cannot sort by {field!r}")
    return sorted(users, key=lambda u: str(getattr(u, field) or ""), reverse=(order == "desc"))
