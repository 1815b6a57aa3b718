# Overview: HTTP client for the CRM API plus the client-side session state owner.

# backend/memimo_crm/client.py
"""
Client-side session handling.

- CRMClient: thin httpx wrapper that carries the bearer token
- LocalSessionStore: JSON file with {token, user, expires_at, remembered_email}
- SessionManager: the one place that knows whether this process is logged in
- ExpiryMonitor: 60 s timer that forces logout once the session is past expiry

WHY: The server is the authority on sessions (every protected route runs
VerifySession). Everything here is advisory: it keeps the local view in
step with the server so screens can decide what to render without a
round-trip, and it drops local state as soon as the server disagrees.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import httpx

from .guard import AccessDecision, GuardState, resolve_access
from .time_utils import parse_iso_datetime, utcnow

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"
EXPIRY_CHECK_INTERVAL_SECONDS = 60.0


class ClientError(Exception):
    """Non-2xx answer from the API. Carries the server's error code when present."""

    def __init__(self, message: str, status_code: int | None = None, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


class CRMClient:
    """
    HTTP client wrapper with authentication and convenience methods.

    timeout defaults to None: calls never time out, a hung server stalls
    the caller.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float | None = None,
        http_client: httpx.Client | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = http_client or httpx.Client(timeout=timeout)
        self.token: Optional[str] = None

    def _headers(self, extra: Optional[Dict] = None) -> Dict:
        """Build request headers with optional auth."""
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if extra:
            headers.update(extra)
        return headers

    def request(self, method: str, path: str, **kwargs) -> httpx.Response:
        headers = self._headers(kwargs.pop("headers", None))
        return self.client.request(
            method,
            f"{self.base_url}{path}",
            headers=headers,
            **kwargs
        )

    def get(self, path: str, params: Optional[Dict] = None, **kwargs) -> httpx.Response:
        return self.request("GET", path, params=params, **kwargs)

    def post(self, path: str, json: Optional[Dict] = None, **kwargs) -> httpx.Response:
        return self.request("POST", path, json=json, **kwargs)

    def put(self, path: str, json: Optional[Dict] = None, **kwargs) -> httpx.Response:
        return self.request("PUT", path, json=json, **kwargs)

    def patch(self, path: str, json: Optional[Dict] = None, **kwargs) -> httpx.Response:
        return self.request("PATCH", path, json=json, **kwargs)

    def delete(self, path: str, **kwargs) -> httpx.Response:
        return self.request("DELETE", path, **kwargs)

    @staticmethod
    def raise_for_error(response: httpx.Response) -> None:
        if response.is_success:
            return
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        raise ClientError(
            body.get("error") or f"HTTP {response.status_code}",
            status_code=response.status_code,
            code=body.get("code"),
        )

    def login(self, email: str, password: str) -> Dict[str, Any]:
        """Authenticate and store token. Raises ClientError on rejection."""
        response = self.post("/api/auth/login", json={"email": email, "password": password})
        self.raise_for_error(response)
        data = response.json()
        self.token = data.get("token")
        return data

    def logout(self) -> None:
        """Delete the server session. The server answers 200 even for unknown tokens."""
        if not self.token:
            return
        try:
            response = self.post("/api/auth/logout")
            self.raise_for_error(response)
        finally:
            self.token = None

    def validate_session(self) -> Optional[Dict[str, Any]]:
        """VerifySession. Returns the session payload, or None when the server rejects the token."""
        if not self.token:
            return None
        response = self.post("/api/auth/validate")
        if response.status_code == 401:
            return None
        self.raise_for_error(response)
        return response.json()

    def close(self):
        """Close the HTTP client."""
        self.client.close()


class LocalSessionStore:
    """
    Session state persisted between runs, as one JSON document.

    clear() drops the session but keeps the remembered email so the login
    form can be pre-filled; forget_email() drops that too.
    """

    SESSION_KEYS = ("token", "user", "expires_at")

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Discarding unreadable session file %s", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, Any]) -> None:
        if not data:
            if self.path.exists():
                self.path.unlink()
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data), encoding="utf-8")

    def save_session(self, token: str, user: Dict[str, Any], expires_at: str) -> None:
        data = self.load()
        data.update({"token": token, "user": user, "expires_at": expires_at})
        self._write(data)

    @property
    def remembered_email(self) -> Optional[str]:
        return self.load().get("remembered_email")

    def remember_email(self, email: str) -> None:
        data = self.load()
        data["remembered_email"] = email
        self._write(data)

    def forget_email(self) -> None:
        data = self.load()
        data.pop("remembered_email", None)
        self._write(data)

    def clear(self) -> None:
        data = self.load()
        for key in self.SESSION_KEYS:
            data.pop(key, None)
        self._write(data)


class SessionManager:
    """
    Owns the process's session state.

    States: loading (restore() in flight) -> unauthenticated | authenticated.
    Any failure while restoring discards the persisted session wholesale.
    """

    def __init__(
        self,
        client: CRMClient,
        store: LocalSessionStore,
        clock: Callable[[], Any] = utcnow,
    ):
        self.client = client
        self.store = store
        self.clock = clock
        self.loading = False
        self.user: Optional[Dict[str, Any]] = None
        self.expires_at = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None and self.client.token is not None

    @property
    def is_admin(self) -> bool:
        return self.is_authenticated and self.user.get("role") == ADMIN_ROLE

    @property
    def role(self) -> Optional[str]:
        return self.user.get("role") if self.user else None

    def _apply(self, payload: Dict[str, Any]) -> None:
        self.client.token = payload["token"]
        self.user = payload["user"]
        self.expires_at = parse_iso_datetime(payload["expires_at"])

    def _reset(self) -> None:
        self.client.token = None
        self.user = None
        self.expires_at = None

    def restore(self) -> bool:
        """
        Resume a persisted session with one VerifySession call.

        Returns True when the session is live again.
        """
        self.loading = True
        try:
            persisted = self.store.load()
            token = persisted.get("token")
            if not token:
                return False

            self.client.token = token
            try:
                payload = self.client.validate_session()
            except (ClientError, httpx.HTTPError) as e:
                logger.warning("Could not verify persisted session: %s", e)
                payload = None

            if not payload:
                self._reset()
                self.store.clear()
                return False

            try:
                self._apply(payload)
            except (KeyError, TypeError, ValueError):
                logger.warning("Discarding malformed session payload")
                self._reset()
                self.store.clear()
                return False

            self.store.save_session(payload["token"], payload["user"], payload["expires_at"])
            return True
        finally:
            self.loading = False

    def login(self, email: str, password: str, remember_email: bool = False) -> Dict[str, Any]:
        """Authenticate. Raises ClientError with the server's code when rejected."""
        try:
            payload = self.client.login(email, password)
        except ClientError:
            self._reset()
            raise

        self._apply(payload)
        self.store.save_session(payload["token"], payload["user"], payload["expires_at"])
        if remember_email:
            self.store.remember_email(email)
        else:
            self.store.forget_email()
        logger.info("Logged in as %s", self.user.get("email"))
        return self.user

    def logout(self) -> None:
        """End the session locally; a failed server call does not keep it alive."""
        try:
            self.client.logout()
        except (ClientError, httpx.HTTPError) as e:
            logger.warning("Server logout failed: %s", e)
        finally:
            self._reset()
            self.store.clear()

    def check_expiry(self) -> bool:
        """
        Force logout when the persisted expiry has passed.

        Returns True when a logout was forced.
        """
        if not self.is_authenticated:
            return False
        expires_at = parse_iso_datetime(self.store.load().get("expires_at"))
        if expires_at is None or self.clock() > expires_at:
            logger.info("Session expired, logging out")
            self.logout()
            return True
        return False

    def access(self, required_role: str | None = None) -> AccessDecision:
        state = GuardState(loading=self.loading, authenticated=self.is_authenticated, role=self.role)
        return resolve_access(state, required_role)


class ExpiryMonitor:
    """
    Recurring expiry check while authenticated.

    Re-arms itself after every tick until the session is gone or stop() is
    called. timer_factory takes (interval, callback) and returns an object
    with start() and cancel(); it defaults to threading.Timer.
    """

    def __init__(
        self,
        manager: SessionManager,
        interval: float = EXPIRY_CHECK_INTERVAL_SECONDS,
        timer_factory: Callable[[float, Callable[[], None]], Any] | None = None,
    ):
        self.manager = manager
        self.interval = interval
        self.timer_factory = timer_factory or self._daemon_timer
        self._timer = None
        self._lock = threading.Lock()
        self._running = False

    @staticmethod
    def _daemon_timer(interval: float, callback: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(interval, callback)
        timer.daemon = True
        return timer

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        with self._lock:
            if self._running or not self.manager.is_authenticated:
                return
            self._running = True
            self._arm()

    def stop(self) -> None:
        with self._lock:
            self._running = False
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _arm(self) -> None:
        self._timer = self.timer_factory(self.interval, self._tick)
        self._timer.start()

    def _tick(self) -> None:
        try:
            self.manager.check_expiry()
        except Exception:
            logger.exception("Session expiry check failed")
        with self._lock:
            if not self._running:
                return
            if self.manager.is_authenticated:
                self._arm()
            else:
                self._running = False
                self._timer = None
