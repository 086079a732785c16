"""
Garud Classes - Test Configuration and Fixtures
"""
import asyncio
import os
import tempfile
from email.message import EmailMessage
from pathlib import Path
from typing import AsyncGenerator, List, Optional
import pytest
from httpx import AsyncClient, ASGITransport
from faker import Faker

# Set testing environment before settings are loaded
_TEST_ROOT = Path(tempfile.mkdtemp(prefix="garud-tests-"))
os.environ['ENVIRONMENT'] = 'testing'
os.environ['UPLOAD_PATH'] = str(_TEST_ROOT / 'uploads')
os.environ['LOG_FILE'] = str(_TEST_ROOT / 'logs' / 'app.log')
os.environ['SMTP_USER'] = 'noreply@garudclasses.test'
os.environ['SMTP_PASSWORD'] = 'test-app-password'
os.environ['ADMIN_EMAIL'] = 'admin@garudclasses.test'

from app.main import app
from app.core.config import settings
from app.core.container import get_asset_service, get_email_service
from app.services.asset_service import AssetService
from app.services.email_service import EmailService
from app.services.template_registry import TemplateRegistry

fake = Faker()


class StubMailChannel:
    """In-memory MailChannel: records messages, optionally fails or stalls"""

    def __init__(self, error: Optional[BaseException] = None, delay: float = 0.0):
        self.error = error
        self.delay = delay
        self.sent: List[EmailMessage] = []
        self.verified = 0
        self.closed = False

    async def verify(self) -> None:
        self.verified += 1
        if self.error is not None:
            raise self.error

    async def send(self, message: EmailMessage) -> str:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.sent.append(message)
        return message["Message-ID"]

    async def close(self) -> None:
        self.closed = True

    def recipients(self) -> List[str]:
        return [m["To"] for m in self.sent]


@pytest.fixture
def upload_root(tmp_path: Path) -> Path:
    return tmp_path / "uploads"


@pytest.fixture
def asset_service(upload_root: Path) -> AssetService:
    """AssetService with a small size ceiling for fast tests"""
    return AssetService(
        storage_root=upload_root,
        max_file_size=1024,
        max_file_count=3,
        allowed_mime_types=["image/jpeg", "image/png", "application/pdf", "text/plain",
                            "video/mp4", "audio/mpeg", "font/woff2"],
    )


@pytest.fixture
def template_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "templates"
    directory.mkdir()
    (directory / "welcome.html").write_text("<h1>Welcome, {{ userName }}!</h1>", encoding="utf-8")
    (directory / "class-reminder.html").write_text(
        "<p>{{ className }} starts at {{ startTime }}</p>", encoding="utf-8"
    )
    return directory


@pytest.fixture
def stub_channel() -> StubMailChannel:
    return StubMailChannel()


@pytest.fixture
def email_service(stub_channel: StubMailChannel, template_dir: Path) -> EmailService:
    return EmailService(
        channel=stub_channel,
        templates=TemplateRegistry(template_dir),
        from_address="noreply@garudclasses.test",
        from_name="Garud Classes",
        send_timeout=1.0,
    )


@pytest.fixture
def app_asset_service() -> AssetService:
    """AssetService over the directory the app serves statically"""
    return AssetService(
        storage_root=settings.UPLOAD_DIR,
        max_file_size=settings.MAX_FILE_SIZE,
        max_file_count=settings.MAX_FILE_COUNT,
        allowed_mime_types=settings.ALLOWED_MIME_TYPES,
        url_prefix=settings.UPLOAD_URL_PREFIX,
    )


@pytest.fixture
def app_email_service(stub_channel: StubMailChannel) -> EmailService:
    """EmailService over the bundled templates with an in-memory channel"""
    return EmailService(
        channel=stub_channel,
        templates=TemplateRegistry(settings.EMAIL_TEMPLATES_DIR),
        from_address=settings.SMTP_USER,
        from_name=settings.SMTP_FROM_NAME,
        send_timeout=1.0,
    )


@pytest.fixture
async def client(app_asset_service: AssetService,
                 app_email_service: EmailService) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with service overrides"""
    app.dependency_overrides[get_asset_service] = lambda: app_asset_service
    app.dependency_overrides[get_email_service] = lambda: app_email_service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac

    app.dependency_overrides.clear()
