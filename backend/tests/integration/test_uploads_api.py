"""
Integration Tests for the upload endpoints
Multipart intake through FastAPI, static retrieval and deletion
"""
from pathlib import Path
from typing import AsyncGenerator

import pytest
from httpx import AsyncClient, ASGITransport

from app.main import app
from app.core.config import settings
from app.core.container import get_asset_service
from app.services.asset_service import AssetService

JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 2044


class CountingBody:
    """Async request body that records how many chunks were pulled"""

    def __init__(self, chunks):
        self.chunks = chunks
        self.pulled = 0

    async def __aiter__(self):
        for chunk in self.chunks:
            self.pulled += 1
            yield chunk


def multipart_body(field: str, filename: str, mime: str, size: int, boundary: str = "garud-boundary"):
    """Single-file multipart body streamed in 64 KB chunks, with its Content-Length"""
    head = (
        f"--{boundary}\r\n"
        f'Content-Disposition: form-data; name="{field}"; filename="{filename}"\r\n'
        f"Content-Type: {mime}\r\n\r\n"
    ).encode()
    tail = f"\r\n--{boundary}--\r\n".encode()
    chunk = 64 * 1024
    chunks = [head] + [b"\x00" * chunk] * (size // chunk) + [tail]
    headers = {
        "Content-Type": f"multipart/form-data; boundary={boundary}",
        "Content-Length": str(sum(len(c) for c in chunks)),
    }
    return CountingBody(chunks), headers


@pytest.fixture
async def small_limit_client(upload_root: Path) -> AsyncGenerator[AsyncClient, None]:
    """App client whose upload service accepts at most 1 KB per file"""
    service = AssetService(storage_root=upload_root, max_file_size=1024, allowed_mime_types=["image/jpeg"])
    app.dependency_overrides[get_asset_service] = lambda: service

    async with AsyncClient(transport=ASGITransport(app=app), base_url='http://test') as ac:
        yield ac

    app.dependency_overrides.clear()


class TestUploadFlow:
    """Upload, fetch, delete"""

    @pytest.mark.asyncio
    async def test_upload_fetch_delete(self, client: AsyncClient):
        """A stored upload is served at its URL until deleted"""
        response = await client.post(
            '/api/v1/uploads/single',
            files={'file': ('photo.jpg', JPEG_BYTES, 'image/jpeg')},
        )

        assert response.status_code == 200
        data = response.json()['data']
        assert data['originalName'] == 'photo.jpg'
        assert data['mimetype'] == 'image/jpeg'
        assert data['size'] == 2048
        assert data['type'] == 'image'
        assert data['filename'].startswith('photo-') and data['filename'].endswith('.jpg')
        assert data['path'] == f"images/{data['filename']}"
        assert data['url'] == f"http://test/uploads/images/{data['filename']}"
        assert (settings.UPLOAD_DIR / 'images' / data['filename']).exists()

        served = await client.get(data['url'])
        assert served.status_code == 200
        assert served.content == JPEG_BYTES

        info = await client.get(f"/api/v1/uploads/images/{data['filename']}")
        assert info.json()['data']['exists'] is True
        assert info.json()['data']['size'] == 2048

        deleted = await client.delete(f"/api/v1/uploads/images/{data['filename']}")
        assert deleted.status_code == 200
        assert deleted.json()['data'] == {'deleted': True}

        again = await client.delete(f"/api/v1/uploads/images/{data['filename']}")
        assert again.status_code == 200
        assert again.json()['data'] == {'deleted': False}

        gone = await client.get(data['url'])
        assert gone.status_code == 404


class TestUploadRejections:
    """Admission errors map to 400 with an error code"""

    @pytest.mark.asyncio
    async def test_invalid_type(self, client: AsyncClient):
        response = await client.post(
            '/api/v1/uploads/single',
            files={'file': ('setup.exe', b'MZ', 'application/x-msdownload')},
        )

        assert response.status_code == 400
        body = response.json()
        assert body['success'] is False
        assert body['error']['code'] == 'INVALID_FILE_TYPE'

    @pytest.mark.asyncio
    async def test_unexpected_field(self, client: AsyncClient):
        response = await client.post(
            '/api/v1/uploads/single',
            files={'avatar': ('a.png', b'png', 'image/png')},
        )

        assert response.status_code == 400
        assert response.json()['error']['code'] == 'UNEXPECTED_FIELD'

    @pytest.mark.asyncio
    async def test_no_file(self, client: AsyncClient):
        response = await client.post('/api/v1/uploads/single', data={'note': 'forgot the file'})

        assert response.status_code == 400
        assert response.json()['error']['code'] == 'NO_FILE_UPLOADED'

    @pytest.mark.asyncio
    async def test_too_many_files(self, client: AsyncClient):
        files = [('files', (f'{i}.txt', b'x', 'text/plain')) for i in range(settings.MAX_FILE_COUNT + 1)]
        response = await client.post('/api/v1/uploads/multiple', files=files)

        assert response.status_code == 400
        assert response.json()['error']['code'] == 'TOO_MANY_FILES'

    @pytest.mark.asyncio
    async def test_profile_image_rejects_documents(self, client: AsyncClient):
        before = set((settings.UPLOAD_DIR / 'documents').glob('cv-*'))
        response = await client.post(
            '/api/v1/uploads/profile-image',
            files={'file': ('cv.pdf', b'%PDF-1.4', 'application/pdf')},
        )

        assert response.status_code == 400
        assert response.json()['error']['code'] == 'INVALID_FILE_TYPE'
        assert set((settings.UPLOAD_DIR / 'documents').glob('cv-*')) == before

    @pytest.mark.asyncio
    async def test_class_recording_rejects_images(self, client: AsyncClient):
        response = await client.post(
            '/api/v1/uploads/class-recording',
            files={'file': ('thumb.png', b'png', 'image/png')},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_directory(self, client: AsyncClient):
        response = await client.get('/api/v1/uploads/secrets/passwd')

        assert response.status_code == 400
        assert response.json()['error']['code'] == 'INVALID_ASSET_PATH'


class TestEarlyRejection:
    """Oversized bodies are refused before they are read"""

    @pytest.mark.asyncio
    async def test_oversized_single_upload_is_not_read(self, small_limit_client: AsyncClient, upload_root: Path):
        body, headers = multipart_body('file', 'big.jpg', 'image/jpeg', 8 * 1024 * 1024)

        response = await small_limit_client.post('/api/v1/uploads/single', content=body, headers=headers)

        assert response.status_code == 400
        assert response.json()['error']['code'] == 'FILE_TOO_LARGE'
        assert body.pulled <= 1
        assert not upload_root.exists() or not any(p.is_file() for p in upload_root.rglob('*'))

    @pytest.mark.asyncio
    async def test_body_over_request_ceiling_is_413(self, client: AsyncClient):
        body, headers = multipart_body('file', 'big.jpg', 'image/jpeg', 64 * 1024)
        headers['Content-Length'] = str(settings.MAX_REQUEST_SIZE + 1)

        response = await client.post('/api/v1/uploads/multiple', content=body, headers=headers)

        assert response.status_code == 413
        assert response.json()['error']['code'] == 'REQUEST_TOO_LARGE'
        assert body.pulled == 0

    @pytest.mark.asyncio
    async def test_parser_stops_at_file_limit(self, client: AsyncClient):
        files = [('files', (f'{i}.txt', b'x', 'text/plain')) for i in range(settings.MAX_FILE_COUNT + 3)]
        response = await client.post('/api/v1/uploads/multiple', files=files)

        assert response.status_code == 400
        assert response.json()['error']['code'] == 'TOO_MANY_FILES'


class TestMultiFileUploads:
    """Batches and multi-field requests"""

    @pytest.mark.asyncio
    async def test_multiple(self, client: AsyncClient):
        files = [
            ('files', ('notes.pdf', b'%PDF-1.4', 'application/pdf')),
            ('files', ('intro.mp3', b'ID3', 'audio/mpeg')),
        ]
        response = await client.post('/api/v1/uploads/multiple', files=files)

        assert response.status_code == 200
        data = response.json()['data']
        assert data['count'] == 2
        assert [f['type'] for f in data['files']] == ['document', 'audio']

    @pytest.mark.asyncio
    async def test_fields(self, client: AsyncClient):
        files = [
            ('profileImage', ('me.png', b'png', 'image/png')),
            ('courseMaterials', ('ch1.pdf', b'%PDF', 'application/pdf')),
            ('courseMaterials', ('ch2.pdf', b'%PDF', 'application/pdf')),
        ]
        response = await client.post('/api/v1/uploads/fields', files=files)

        assert response.status_code == 200
        data = response.json()['data']
        assert data['profileImage']['type'] == 'image'
        assert len(data['courseMaterials']) == 2
        assert 'classRecording' not in data

    @pytest.mark.asyncio
    async def test_class_recording(self, client: AsyncClient):
        response = await client.post(
            '/api/v1/uploads/class-recording',
            files={'file': ('lecture.mp4', b'\x00\x00\x00\x18ftypmp42', 'video/mp4')},
        )

        assert response.status_code == 200
        assert response.json()['data']['path'].startswith('videos/')


class TestHealth:
    """Health endpoint"""

    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        response = await client.get('/health')

        assert response.status_code == 200
        assert response.json()['status'] == 'healthy'
        assert 'X-Request-ID' in response.headers
