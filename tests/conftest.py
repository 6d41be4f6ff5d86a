"""
Pytest configuration and fixtures
"""

import json
from typing import AsyncGenerator, Dict, List, Optional, Set, Tuple
import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession
from core.config import Settings, DatabaseProvider
from core.context import AppContext
from core.database import build_engine, build_session_factory, create_tables
from scraper.analytics import AnalyticsSink
from scraper.client import SkystageClient, LOGIN_PAGE_PATH, LOGIN_SUBMIT_PATH, PROFILE_PATH
from scraper.session import SessionManager

BASE_URL = "https://skystage.test"
TEST_EMAIL = "pilot@example.com"
TEST_PASSWORD = "hunter2"


# ============================================================================
# Database
# ============================================================================

@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        DATABASE_PROVIDER=DatabaseProvider.SQLITE,
        DATABASE_URL="sqlite+aiosqlite://",
        ENVIRONMENT="test",
        SKYSTAGE_BASE_URL=BASE_URL,
        SKYSTAGE_LOGIN_EMAIL=TEST_EMAIL,
        SKYSTAGE_LOGIN_PASSWORD=TEST_PASSWORD,
        SKYSTAGE_SESSION_FILE=str(tmp_path / "session.json"),
        SYNC_BATCH_DELAY=0,
        RETRY_DELAY=0,
        EXPORT_DIR=str(tmp_path / "exports"),
    )


@pytest_asyncio.fixture(scope="function")
async def test_engine(test_settings):
    """In-memory SQLite engine with every table created"""
    engine = build_engine(test_settings)
    await create_tables(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return build_session_factory(test_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


# ============================================================================
# Analytics
# ============================================================================

class RecordingAnalyticsSink(AnalyticsSink):
    """Keeps events in memory"""

    def __init__(self):
        self.events: List[Dict] = []

    async def _write(self, event_type, entity_type, entity_id, user_id, metadata):
        self.events.append({
            "event_type": event_type,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "user_id": user_id,
            "metadata": metadata,
        })

    def types(self) -> List[str]:
        return [event["event_type"] for event in self.events]


@pytest.fixture
def analytics() -> RecordingAnalyticsSink:
    return RecordingAnalyticsSink()


# ============================================================================
# HTML fixtures
# ============================================================================

def listing_html(cards: List[Tuple[str, str]]) -> str:
    """Listing page with one ``.formation-card`` per ``(id, name)``"""
    body = "".join(
        f"""
        <div class="formation-card" data-formation-id="{formation_id}">
            <img src="/thumbs/{formation_id}.jpg">
            <h3 class="formation-name">{name}</h3>
            <p class="formation-description">{name} formation</p>
            <span class="category">Epic</span>
            <span class="drone-count">100 drones</span>
            <span class="duration">45.5s</span>
        </div>
        """
        for formation_id, name in cards
    )
    return f"<html><body><div class='grid'>{body}</div></body></html>"


def detail_html(formation_id: str, name: str, drone_count: int = 100) -> str:
    """Detail page embedding the formation in Next.js page props"""
    blob = {
        "props": {
            "pageProps": {
                "formation": {
                    "id": formation_id,
                    "title": name,
                    "summary": f"{name} in detail",
                    "drones": str(drone_count),
                    "length": "45.5",
                    "author": "Sky Studio",
                    "tags": "show,night",
                    "formationData": {
                        "frames": [
                            {"time": 0, "positions": [{"x": 0, "y": 0, "z": 10}, {"x": 1, "y": 0, "z": 10}]},
                            {"time": 1, "positions": [{"x": 0, "y": 1, "z": 12}, {"x": 1, "y": 1, "z": 12}]},
                        ]
                    },
                }
            }
        }
    }
    return (
        "<html><head>"
        f'<script id="__NEXT_DATA__" type="application/json">{json.dumps(blob)}</script>'
        f"</head><body><h1>{name}</h1></body></html>"
    )


@pytest.fixture
def make_detail_html():
    return detail_html


@pytest.fixture
def listing_page_html() -> str:
    """Two valid cards, one without any name, one nested duplicate match"""
    return """
    <html><body>
        <div class="formation-card" data-formation-id="heart-01">
            <a href="/formations/heart-01"><img data-src="/thumbs/heart.jpg"></a>
            <h3 class="formation-name">Beating Heart</h3>
            <p class="formation-description">A pulsating heart</p>
            <span class="category">Love</span>
            <span class="drone-count">100 drones</span>
            <span class="duration">47.92 seconds</span>
            <span class="price">$1,299.50</span>
            <span class="rating" data-rating="4.8">4.8</span>
            <div class="tags"><span class="tag">heart</span><span class="tag">romantic</span></div>
            <span class="creator">Sky Studio</span>
            <span class="downloads">1024 downloads</span>
        </div>
        <div class="formation-card">
            <a href="/formations/spiral-7/"><img src="https://cdn.example.com/spiral.png"></a>
            <h4>Spiral</h4>
            <span class="drones">200</span>
        </div>
        <div class="formation-card" data-formation-id="nameless">
            <span class="drone-count">50</span>
        </div>
    </body></html>
    """


@pytest.fixture
def detail_page_dom_html() -> str:
    """Detail page without any embedded data"""
    return """
    <html><body>
        <div class="formation-detail" data-formation-id="wave-3">
            <h1>Ocean Wave</h1>
            <div class="description">Rolling waves of light</div>
            <span class="category">Nature</span>
            <span data-drone-count="150"></span>
            <span data-duration="30"></span>
            <span class="price">Free</span>
            <img src="/media/wave.jpg">
        </div>
    </body></html>
    """


# ============================================================================
# Fake third-party platform
# ============================================================================

class FakePlatform:
    """
    In-process stand-in for the formation platform, served through
    ``httpx.MockTransport``.

    Listing pages are registered by path; detail pages are served only on
    the ``/formations/{id}`` template, every other template answers 404.
    """

    def __init__(self):
        self.listings: Dict[str, str] = {}
        self.details: Dict[str, Tuple[str, str]] = {}
        self.failing_paths: Set[str] = set()
        self.failing_ids: Set[str] = set()
        self.accept_login = True
        self.reject_next = 0
        self.login_count = 0
        self.token: Optional[str] = None
        self.requests: List[httpx.Request] = []

    def add_listing(self, path: str, cards: List[Tuple[str, str]]) -> None:
        self.listings[path] = listing_html(cards)

    def add_detail(self, formation_id: str, name: str, **kwargs) -> None:
        self.details[formation_id] = ("text/html", detail_html(formation_id, name, **kwargs))

    def add_json_detail(self, formation_id: str, payload: Dict) -> None:
        self.details[formation_id] = ("application/json", json.dumps(payload))

    def paths(self) -> List[str]:
        return [request.url.path for request in self.requests]

    def _authorized(self, request: httpx.Request) -> bool:
        return self.token is not None and f"session={self.token}" in request.headers.get("cookie", "")

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == LOGIN_PAGE_PATH:
            return httpx.Response(200, html='<html><head><meta name="csrf-token" content="csrf-123"></head></html>')

        if path == LOGIN_SUBMIT_PATH:
            self.login_count += 1
            if not self.accept_login:
                return httpx.Response(401, json={"error": "invalid credentials"})
            self.token = f"token-{self.login_count}"
            return httpx.Response(
                200,
                json={"ok": True},
                headers={"set-cookie": f"session={self.token}; Path=/; HttpOnly"},
            )

        if not self._authorized(request):
            return httpx.Response(401)

        if self.reject_next > 0:
            self.reject_next -= 1
            self.token = None
            return httpx.Response(401)

        if path == PROFILE_PATH:
            return httpx.Response(200, html=(
                '<div data-user-id="u-1" data-user-email="pilot@example.com" '
                'data-user-name="Pat Pilot" data-membership="pro" data-credits="42">'
                "Operator account</div>"
            ))

        if path in self.failing_paths:
            return httpx.Response(500)

        if path in self.listings:
            return httpx.Response(200, html=self.listings[path])

        if path.startswith("/formations/"):
            formation_id = path.rsplit("/", 1)[-1]
            if formation_id in self.failing_ids:
                return httpx.Response(500)
            if formation_id in self.details:
                content_type, body = self.details[formation_id]
                return httpx.Response(200, content=body.encode("utf-8"), headers={"content-type": content_type})

        return httpx.Response(404)


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def session_manager(tmp_path) -> SessionManager:
    return SessionManager(tmp_path / "session.json", ttl_seconds=3600)


@pytest_asyncio.fixture
async def skystage_client(platform, session_manager, analytics) -> AsyncGenerator[SkystageClient, None]:
    client = SkystageClient(
        session_manager,
        BASE_URL,
        email=TEST_EMAIL,
        password=TEST_PASSWORD,
        analytics=analytics,
        transport=httpx.MockTransport(platform.handler),
    )
    yield client
    await client.close()


@pytest.fixture
def app_context(test_settings, test_engine, session_factory, analytics) -> AppContext:
    """Application context over the test database, recording analytics in memory"""
    return AppContext(
        settings=test_settings,
        engine=test_engine,
        session_factory=session_factory,
        session_manager=SessionManager(
            test_settings.SKYSTAGE_SESSION_FILE,
            ttl_seconds=test_settings.SKYSTAGE_SESSION_TTL_SECONDS,
        ),
        analytics=analytics,
    )
