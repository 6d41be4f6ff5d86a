"""
Authenticated HTTP client for the third-party formation platform.

This module provides:
- Form login with CSRF token discovery and a protected-page probe
- Cookie propagation through httpx request/response event hooks
- Transparent single re-login on 401, serialized across concurrent callers
- Mapping of httpx failures onto the sync error taxonomy
"""

import asyncio
from typing import Optional
import httpx
from bs4 import BeautifulSoup
from core.exceptions import AuthenticationError, TransientFetchError
from scraper.analytics import AnalyticsSink, LoggingAnalyticsSink
from scraper.extractors.html import parse_html
from scraper.session import SessionManager, SessionUser
import logging

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,application/json;q=0.8,*/*;q=0.7",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
}

LOGIN_PAGE_PATH = "/email-password-login-signup"
LOGIN_SUBMIT_PATH = "/api/auth/login"
PROFILE_PATH = "/profile"

CSRF_SOURCES = (
    ("meta[name='csrf-token']", "content"),
    ("input[name='_token']", "value"),
    ("input[name='csrf_token']", "value"),
)


def extract_csrf_token(html: str) -> Optional[str]:
    """CSRF token from the login form, if the page carries one"""
    soup = parse_html(html)
    for selector, attribute in CSRF_SOURCES:
        element = soup.select_one(selector)
        if element is not None and element.get(attribute):
            return str(element[attribute])
    return None


def _attr_of(soup: BeautifulSoup, attribute: str) -> Optional[str]:
    element = soup.select_one(f"[{attribute}]")
    if element is None:
        return None
    value = element.get(attribute)
    return str(value).strip() if value else None


def classify_account(soup: BeautifulSoup) -> str:
    """operator, artist or customer, judged from the profile page wording"""
    declared = _attr_of(soup, "data-user-type")
    text = (declared or soup.get_text(" ", strip=True)).lower()
    if "operator" in text or "business" in text:
        return "operator"
    if "artist" in text or "creator" in text:
        return "artist"
    return "customer"


def parse_user_info(html: str, fallback_email: Optional[str] = None) -> SessionUser:
    """Build the account profile from the profile page"""
    soup = parse_html(html)

    credits = _attr_of(soup, "data-credits")
    try:
        credits_value = int(float(credits)) if credits else None
    except ValueError:
        credits_value = None

    return SessionUser(
        id=_attr_of(soup, "data-user-id"),
        email=_attr_of(soup, "data-user-email") or fallback_email,
        name=_attr_of(soup, "data-user-name") or "Unknown User",
        user_type=classify_account(soup),
        membership=_attr_of(soup, "data-membership"),
        credits=credits_value,
    )


class SkystageClient:
    """
    HTTP client bound to one SessionManager.

    Every outbound request carries the session's cookie header and every
    response carrying ``Set-Cookie`` updates the session. Use as an async
    context manager, or call ``close()``.

    Attributes:
        timeout: Default request timeout in seconds (default: 30.0)
        probe_timeout: Timeout for the post-login profile probe (default: 10.0)
    """

    def __init__(
        self,
        session: SessionManager,
        base_url: str,
        email: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = 30.0,
        probe_timeout: float = 10.0,
        analytics: Optional[AnalyticsSink] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.email = email
        self.password = password
        self.timeout = timeout
        self.probe_timeout = probe_timeout
        self.analytics = analytics or LoggingAnalyticsSink()
        self._login_lock = asyncio.Lock()

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=DEFAULT_HEADERS,
            timeout=timeout,
            follow_redirects=False,
            transport=transport,
            event_hooks={
                "request": [self._attach_cookies],
                "response": [self._capture_cookies],
            },
        )

    async def __aenter__(self) -> "SkystageClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    # --------------------------------------------------
    # Cookie hooks
    # --------------------------------------------------
    async def _attach_cookies(self, request: httpx.Request) -> None:
        cookie_header = self.session.cookie_header
        if cookie_header:
            request.headers["Cookie"] = cookie_header
        elif "Cookie" in request.headers:
            del request.headers["Cookie"]

    async def _capture_cookies(self, response: httpx.Response) -> None:
        set_cookies = response.headers.get_list("set-cookie")
        if set_cookies:
            self.session.update_cookies(set_cookies)

    # --------------------------------------------------
    # Authentication
    # --------------------------------------------------
    async def login(self, email: Optional[str] = None, password: Optional[str] = None) -> bool:
        """
        Log in with email and password.

        Returns:
            True once the profile page confirms the session, False on missing
            credentials, network failure or rejected login
        """
        email = email or self.email
        password = password or self.password

        try:
            if not email or not password:
                raise AuthenticationError(
                    "Login credentials are not configured",
                    context={"stage": "credentials"}
                )

            self.session.clear()

            login_page = await self._client.get(LOGIN_PAGE_PATH)
            token = extract_csrf_token(login_page.text)

            form = {"email": email, "password": password}
            if token:
                form["_token"] = token

            submit = await self._client.post(
                LOGIN_SUBMIT_PATH,
                data=form,
                headers={
                    "X-Requested-With": "XMLHttpRequest",
                    "Referer": f"{self.base_url}{LOGIN_PAGE_PATH}",
                },
            )
            if submit.status_code not in (200, 302):
                raise AuthenticationError(
                    "Login form was rejected",
                    context={"stage": "submit", "status_code": submit.status_code}
                )

            profile = await self._client.get(PROFILE_PATH, timeout=self.probe_timeout)
            if profile.status_code != 200:
                raise AuthenticationError(
                    "Could not verify login on the profile page",
                    context={"stage": "verify", "status_code": profile.status_code}
                )

            user = parse_user_info(profile.text, fallback_email=email)

        except AuthenticationError as e:
            logger.error(f"Login failed: {e.message}", extra={"error_context": e.to_dict()})
            await self._login_failed(email, e.message)
            return False

        except httpx.HTTPError as e:
            logger.error(f"Login failed with network error: {e}")
            await self._login_failed(email, str(e))
            return False

        self.session.establish(user)
        await self.analytics.record_event(
            "skystage_auth_success",
            "session",
            entity_id=user.id,
            metadata={"email": user.email, "user_type": user.user_type},
        )
        return True

    async def _login_failed(self, email: Optional[str], reason: str) -> None:
        self.session.clear()
        await self.analytics.record_event(
            "skystage_auth_failed",
            "session",
            metadata={"email": email, "reason": reason},
        )

    async def ensure_authenticated(self) -> SessionUser:
        """
        Reuse the in-memory or persisted session, logging in when neither
        is valid.

        Raises:
            AuthenticationError: If no session could be established
        """
        if self.session.is_authenticated or self.session.load_session():
            return self.session.user or SessionUser()

        if not await self.login():
            raise AuthenticationError(
                "Unable to authenticate with the formation platform",
                context={"base_url": self.base_url}
            )
        return self.session.user

    async def _relogin(self, seen_generation: int) -> None:
        """Re-login once, even when several requests hit 401 together"""
        async with self._login_lock:
            if self.session.generation != seen_generation and self.session.is_authenticated:
                logger.debug("Session already refreshed by another request")
                return

            logger.warning("Session rejected with 401, logging in again")
            self.session.clear()
            if not await self.login():
                raise AuthenticationError(
                    "Re-login after 401 failed",
                    context={"stage": "relogin"}
                )

    async def logout(self) -> None:
        user_id = self.session.user.id if self.session.user else None
        self.session.logout()
        await self.analytics.record_event("skystage_logout", "session", entity_id=user_id)

    # --------------------------------------------------
    # Requests
    # --------------------------------------------------
    async def fetch(self, path: str, timeout: Optional[float] = None) -> httpx.Response:
        """
        GET an authenticated page.

        Raises:
            TransientFetchError: Network failure, timeout, 401 (after the
                re-login), or any other non-200 status
            AuthenticationError: If the re-login after a 401 fails
        """
        generation = self.session.generation

        try:
            response = await self._client.get(path, timeout=timeout or self.timeout)
        except httpx.TimeoutException as e:
            raise TransientFetchError(
                f"Timeout fetching {path}",
                context={"url": path},
                original_exception=e
            )
        except httpx.HTTPError as e:
            raise TransientFetchError(
                f"Network error fetching {path}",
                context={"url": path},
                original_exception=e
            )

        if response.status_code == 401:
            await self._relogin(generation)
            raise TransientFetchError(
                f"Session rejected fetching {path}",
                context={"url": path, "status_code": 401}
            )

        if response.status_code != 200:
            raise TransientFetchError(
                f"Unexpected status {response.status_code} fetching {path}",
                context={"url": path, "status_code": response.status_code}
            )

        return response
