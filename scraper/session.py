"""
Third-party session state with file persistence.

The session is the cookie set returned by the platform plus the profile of
the authenticated account. It is persisted as a single JSON document and
reloaded on process start while younger than the configured TTL.

The TTL is measured from the original login. Cookie refreshes on later
responses are persisted but do not extend the session lifetime.
"""

import json
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union
import logging

logger = logging.getLogger(__name__)


@dataclass
class SessionUser:
    """Profile of the authenticated third-party account"""
    id: Optional[str] = None
    email: Optional[str] = None
    name: str = "Unknown User"
    user_type: str = "customer"
    membership: Optional[str] = None
    credits: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionUser":
        known = {key: data.get(key) for key in cls.__dataclass_fields__ if key in data}
        return cls(**known)


class SessionManager:
    """
    Owns the cookie state shared by every request of one process.

    All mutations are synchronous, so under a single event loop they never
    interleave with each other. ``generation`` increases on every successful
    login and lets callers tell whether a re-login already happened while
    they were waiting.
    """

    def __init__(self, session_file: Union[str, Path], ttl_seconds: int = 86400):
        self.session_file = Path(session_file)
        self.ttl = timedelta(seconds=ttl_seconds)
        self.cookies: Dict[str, str] = {}
        self.user: Optional[SessionUser] = None
        self.authenticated_at: Optional[datetime] = None
        self.generation = 0

    @property
    def is_authenticated(self) -> bool:
        return self.authenticated_at is not None and not self.is_expired()

    @property
    def expires_at(self) -> Optional[datetime]:
        if self.authenticated_at is None:
            return None
        return self.authenticated_at + self.ttl

    @property
    def cookie_header(self) -> str:
        return "; ".join(f"{name}={value}" for name, value in self.cookies.items())

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.authenticated_at is None:
            return True
        return (now or datetime.utcnow()) - self.authenticated_at >= self.ttl

    # --------------------------------------------------
    # Cookie handling
    # --------------------------------------------------
    def update_cookies(self, set_cookie_headers: Iterable[str]) -> None:
        """
        Merge ``Set-Cookie`` values into the session.

        Only the ``name=value`` pair of each header is kept; attributes such
        as Path or HttpOnly are dropped. A cookie with an empty value is
        removed. The session file is rewritten once authenticated.
        """
        changed = False
        for header in set_cookie_headers:
            pair = header.split(";", 1)[0].strip()
            name, sep, value = pair.partition("=")
            name = name.strip()
            if not sep or not name:
                continue
            if value:
                self.cookies[name] = value.strip()
            else:
                self.cookies.pop(name, None)
            changed = True

        if changed and self.authenticated_at is not None:
            self.save_session()

    # --------------------------------------------------
    # Lifecycle
    # --------------------------------------------------
    def establish(self, user: SessionUser) -> None:
        """Mark the current cookies as an authenticated session and persist it"""
        self.user = user
        self.authenticated_at = datetime.utcnow()
        self.generation += 1
        self.save_session()
        logger.info(f"Session established for {user.email or 'unknown account'}")

    def clear(self) -> None:
        """Drop in-memory state, keeping the persisted file"""
        self.cookies = {}
        self.user = None
        self.authenticated_at = None

    def load_session(self) -> bool:
        """
        Load the persisted session.

        Returns:
            True when a session younger than the TTL was loaded. A missing,
            unreadable or expired file is a normal outcome and returns False.
        """
        if not self.session_file.exists():
            return False

        try:
            data = json.loads(self.session_file.read_text(encoding="utf-8"))
            authenticated_at = datetime.utcfromtimestamp(float(data["timestamp"]))
            cookies = dict(data.get("cookies") or {})
            user = SessionUser.from_dict(data["user"]) if data.get("user") else None
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable session file {self.session_file}: {e}")
            return False

        if datetime.utcnow() - authenticated_at >= self.ttl:
            logger.info("Persisted session expired")
            return False

        self.cookies = cookies
        self.user = user
        self.authenticated_at = authenticated_at
        self.generation += 1
        logger.info("Loaded persisted session")
        return True

    def save_session(self) -> None:
        if self.authenticated_at is None:
            return

        payload = {
            "cookies": self.cookies,
            "user": self.user.to_dict() if self.user else None,
            "timestamp": (self.authenticated_at - datetime(1970, 1, 1)).total_seconds(),
        }
        self.session_file.parent.mkdir(parents=True, exist_ok=True)
        self.session_file.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def logout(self) -> None:
        """Clear state and delete the persisted session; safe to repeat"""
        self.clear()
        try:
            self.session_file.unlink()
        except FileNotFoundError:
            pass
        logger.info("Session cleared")
