"""
Unit Tests for Authentication API Endpoints
"""
import pytest
from httpx import AsyncClient
from faker import Faker

fake = Faker()


def registration(**overrides) -> dict:
    data = {
        'email': fake.unique.email(),
        'password': 'securePassword123!',
        'full_name': fake.name(),
        'role': 'student',
        'student_id': fake.unique.bothify('REG####??').upper(),
        'department': 'Mechanical',
    }
    data.update(overrides)
    return data


class TestUserRegistration:
    """Test user registration endpoint"""

    @pytest.mark.asyncio
    async def test_register_success(self, client: AsyncClient):
        """Registration returns the user and a token pair"""
        user_data = registration()

        response = await client.post('/api/auth/register', json=user_data)

        assert response.status_code == 201
        body = response.json()
        assert body['success'] is True
        assert body['data']['user']['email'] == user_data['email']
        assert body['data']['user']['role'] == 'student'
        assert body['data']['token_type'] == 'bearer'
        assert body['data']['access_token']
        assert body['data']['refresh_token']
        assert 'hashed_password' not in body['data']['user']

    @pytest.mark.asyncio
    async def test_register_duplicate_email(self, client: AsyncClient, test_user):
        response = await client.post('/api/auth/register', json=registration(email=test_user.email))

        assert response.status_code == 400
        body = response.json()
        assert body['success'] is False
        assert 'already registered' in body['message'].lower()

    @pytest.mark.asyncio
    async def test_register_duplicate_student_id(self, client: AsyncClient, test_user):
        response = await client.post('/api/auth/register', json=registration(student_id=test_user.student_id))

        assert response.status_code == 400
        assert response.json()['error']['details']['field'] == 'student_id'

    @pytest.mark.asyncio
    async def test_register_invalid_email(self, client: AsyncClient):
        response = await client.post('/api/auth/register', json=registration(email='not-an-email'))

        assert response.status_code == 400
        assert response.json()['error']['code'] == 'VALIDATION_ERROR'

    @pytest.mark.asyncio
    async def test_register_short_password(self, client: AsyncClient):
        response = await client.post('/api/auth/register', json=registration(password='123'))
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_cannot_self_register_as_admin(self, client: AsyncClient):
        response = await client.post('/api/auth/register', json=registration(role='admin'))
        assert response.status_code == 400


class TestUserLogin:
    """Test login, refresh and /me"""

    @pytest.mark.asyncio
    async def test_login_success(self, client: AsyncClient, test_user):
        response = await client.post('/api/auth/login', json={
            'email': test_user.email,
            'password': 'testpassword123',
        })

        assert response.status_code == 200
        data = response.json()['data']
        assert data['user']['id'] == test_user.id
        assert data['access_token']

    @pytest.mark.asyncio
    async def test_login_wrong_password(self, client: AsyncClient, test_user):
        response = await client.post('/api/auth/login', json={
            'email': test_user.email,
            'password': 'wrongpassword',
        })

        assert response.status_code == 401
        assert response.json()['message'] == 'Incorrect email or password'

    @pytest.mark.asyncio
    async def test_login_unknown_user(self, client: AsyncClient):
        response = await client.post('/api/auth/login', json={
            'email': fake.email(),
            'password': 'whatever123',
        })
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_login_inactive_user(self, client: AsyncClient, make_user):
        user = await make_user(is_active=False)

        response = await client.post('/api/auth/login', json={
            'email': user.email,
            'password': 'testpassword123',
        })
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_refresh_issues_new_pair(self, client: AsyncClient, test_user):
        login = await client.post('/api/auth/login', json={
            'email': test_user.email,
            'password': 'testpassword123',
        })
        refresh_token = login.json()['data']['refresh_token']

        response = await client.post('/api/auth/refresh', json={'refresh_token': refresh_token})

        assert response.status_code == 200
        assert response.json()['data']['access_token']

    @pytest.mark.asyncio
    async def test_refresh_rejects_access_token(self, client: AsyncClient, test_user):
        login = await client.post('/api/auth/login', json={
            'email': test_user.email,
            'password': 'testpassword123',
        })
        access_token = login.json()['data']['access_token']

        response = await client.post('/api/auth/refresh', json={'refresh_token': access_token})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_me(self, client: AsyncClient, test_user, auth_headers):
        response = await client.get('/api/auth/me', headers=auth_headers)

        assert response.status_code == 200
        assert response.json()['data']['email'] == test_user.email

    @pytest.mark.asyncio
    async def test_me_without_token(self, client: AsyncClient):
        response = await client.get('/api/auth/me')
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_token_from_cookie(self, client: AsyncClient, test_user, auth_headers):
        token = auth_headers['Authorization'].split(' ', 1)[1]
        client.cookies.set('access_token', token)

        response = await client.get('/api/auth/me')

        assert response.status_code == 200
        assert response.json()['data']['id'] == test_user.id

    @pytest.mark.asyncio
    async def test_refresh_token_cannot_authenticate(self, client: AsyncClient, test_user):
        login = await client.post('/api/auth/login', json={
            'email': test_user.email,
            'password': 'testpassword123',
        })
        refresh_token = login.json()['data']['refresh_token']

        response = await client.get('/api/auth/me', headers={'Authorization': f'Bearer {refresh_token}'})
        assert response.status_code == 401


class TestHealth:
    """Health endpoints"""

    @pytest.mark.asyncio
    async def test_root_health(self, client: AsyncClient):
        response = await client.get('/health')
        assert response.status_code == 200
        assert response.json()['status'] == 'healthy'

    @pytest.mark.asyncio
    async def test_api_health(self, client: AsyncClient):
        response = await client.get('/api/health')
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_liveness(self, client: AsyncClient):
        response = await client.get('/api/health/live')
        assert response.json()['status'] == 'alive'

    @pytest.mark.asyncio
    async def test_readiness_with_database(self, client: AsyncClient):
        response = await client.get('/api/health/ready')

        assert response.status_code == 200
        body = response.json()
        assert body['status'] == 'ready'
        assert body['checks']['database']['tables_ready'] is True
