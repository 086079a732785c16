"""
Integration Tests for the email endpoints
Bundled templates rendered for real, delivery through an in-memory channel
"""
import aiosmtplib
import pytest
from httpx import AsyncClient
from faker import Faker

from app.core.config import settings

fake = Faker()


class TestTransactionalEmails:
    """Welcome, template and custom sends"""

    @pytest.mark.asyncio
    async def test_welcome(self, client: AsyncClient, stub_channel):
        email = fake.email()
        response = await client.post('/api/v1/emails/welcome', json={'email': email, 'name': 'Meera'})

        assert response.status_code == 200
        assert response.json()['data']['messageId'] == stub_channel.sent[0]['Message-ID']
        assert stub_channel.recipients() == [email]
        assert 'Meera' in stub_channel.sent[0].get_body(preferencelist=('html',)).get_content()

    @pytest.mark.asyncio
    async def test_template(self, client: AsyncClient, stub_channel):
        response = await client.post('/api/v1/emails/template', json={
            'to': fake.email(),
            'subject': 'Physics class today',
            'template': 'class-reminder',
            'context': {'className': 'Physics', 'startTime': '5:00 PM'},
        })

        assert response.status_code == 200
        assert 'Physics' in stub_channel.sent[0].get_body(preferencelist=('html',)).get_content()

    @pytest.mark.asyncio
    async def test_unknown_template_is_502(self, client: AsyncClient, stub_channel):
        response = await client.post('/api/v1/emails/template', json={
            'to': fake.email(),
            'subject': 'Hello',
            'template': 'newsletter',
        })

        assert response.status_code == 502
        assert response.json() == {
            'success': False,
            'errorKind': 'template_not_found',
            'error': "Email template 'newsletter' not found",
        }
        assert stub_channel.sent == []

    @pytest.mark.asyncio
    async def test_custom(self, client: AsyncClient, stub_channel):
        response = await client.post('/api/v1/emails/custom', json={
            'to': fake.email(),
            'subject': 'Fee reminder',
            'message': '<p>Second instalment is due</p>',
        })

        assert response.status_code == 200
        assert stub_channel.sent[0]['Subject'] == 'Fee reminder'

    @pytest.mark.asyncio
    async def test_auth_failure_is_502_with_remediation(self, client: AsyncClient, stub_channel):
        stub_channel.error = aiosmtplib.SMTPAuthenticationError(535, '5.7.8 Username and Password not accepted')

        response = await client.post('/api/v1/emails/welcome', json={'email': fake.email(), 'name': 'Meera'})

        assert response.status_code == 502
        body = response.json()
        assert body['errorKind'] == 'auth_error'
        assert 'SMTP_PASSWORD' in body['remediation']

    @pytest.mark.asyncio
    async def test_invalid_email_is_422(self, client: AsyncClient):
        response = await client.post('/api/v1/emails/welcome', json={'email': 'not-an-email', 'name': 'X'})
        assert response.status_code == 422


class TestBulkEmail:
    """Bulk sends report per recipient"""

    @pytest.mark.asyncio
    async def test_bulk(self, client: AsyncClient, stub_channel):
        emails = [fake.email() for _ in range(3)]
        response = await client.post('/api/v1/emails/bulk', json={
            'emails': emails,
            'subject': 'Holiday notice',
            'message': '<p>Institute closed on Monday</p>',
        })

        assert response.status_code == 200
        data = response.json()['data']
        assert data['sentCount'] == 3
        assert data['failedCount'] == 0
        assert sorted(stub_channel.recipients()) == sorted(emails)

    @pytest.mark.asyncio
    async def test_bulk_requires_recipients(self, client: AsyncClient):
        response = await client.post('/api/v1/emails/bulk', json={
            'emails': [], 'subject': 'x', 'message': 'y',
        })
        assert response.status_code == 422


class TestPublicForms:
    """Contact and enrollment notify the admin, then confirm to the sender"""

    @pytest.mark.asyncio
    async def test_contact(self, client: AsyncClient, stub_channel):
        email = fake.email()
        response = await client.post('/api/v1/emails/contact', json={
            'name': 'Arjun Mehta',
            'email': email,
            'phone': '9876543210',
            'course': 'JEE Advanced',
        })

        assert response.status_code == 200
        data = response.json()['data']
        assert data['inquirerEmail'] == email
        assert data['adminNotified'] is True
        assert stub_channel.recipients() == [settings.ADMIN_EMAIL, email]
        admin_html = stub_channel.sent[0].get_body(preferencelist=('html',)).get_content()
        assert 'Arjun Mehta' in admin_html
        assert 'Not specified' in admin_html  # preferredTime missing

    @pytest.mark.asyncio
    async def test_contact_failure_skips_confirmation(self, client: AsyncClient, stub_channel):
        stub_channel.error = aiosmtplib.SMTPConnectError('Error connecting to relay')

        response = await client.post('/api/v1/emails/contact', json={
            'name': 'Arjun Mehta', 'email': fake.email(), 'phone': '9876543210',
        })

        assert response.status_code == 502
        assert response.json()['errorKind'] == 'connection_error'
        assert stub_channel.sent == []

    @pytest.mark.asyncio
    async def test_enrollment(self, client: AsyncClient, stub_channel):
        email = fake.email()
        response = await client.post('/api/v1/emails/enrollment', json={
            'fullName': 'Priya Sharma',
            'email': email,
            'mobileNumber': '9123456780',
            'currentClass': '11th',
            'targetExam': 'NEET',
            'preferredBatch': 'Morning',
            'city': 'Jaipur',
        })

        assert response.status_code == 200
        assert response.json()['data']['applicantEmail'] == email
        assert stub_channel.recipients() == [settings.ADMIN_EMAIL, email]
        confirmation = stub_channel.sent[1].get_body(preferencelist=('html',)).get_content()
        assert 'NEET' in confirmation

    @pytest.mark.asyncio
    async def test_enrollment_missing_fields_is_422(self, client: AsyncClient):
        response = await client.post('/api/v1/emails/enrollment', json={'fullName': 'Priya', 'email': fake.email()})
        assert response.status_code == 422


class TestTemplateListing:
    """GET /templates"""

    @pytest.mark.asyncio
    async def test_lists_bundled_templates(self, client: AsyncClient):
        response = await client.get('/api/v1/emails/templates')

        assert response.status_code == 200
        templates = {t['name']: t['variables'] for t in response.json()['data']}
        assert templates['welcome'] == ['name', 'userName']
        assert templates['class-reminder'] == ['className', 'startTime']
        assert 'contact-inquiry' in templates
