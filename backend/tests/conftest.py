"""
Campus Portal - Test Configuration and Fixtures
"""
import os
from typing import AsyncGenerator, Callable, Awaitable
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from faker import Faker

# Set testing environment before the app reads its settings
os.environ['ENVIRONMENT'] = 'testing'
os.environ['DATABASE_URL'] = 'sqlite+aiosqlite:///./test_campus_portal.db'
os.environ['SECRET_KEY'] = 'test-secret-key-for-testing-only'
os.environ['JWT_SECRET_KEY'] = 'test-jwt-secret-key-for-testing'
os.environ['RATE_LIMIT_ENABLED'] = 'false'
os.environ['RECONCILE_ENABLED'] = 'false'
os.environ['BCRYPT_ROUNDS'] = '4'

from campus_portal.main import app
from campus_portal.core.database import Base, get_db
from campus_portal.core.security import get_password_hash, build_token_pair
from campus_portal.models.user import User, UserRole

fake = Faker()

TEST_PASSWORD = 'testpassword123'

# Test database setup
TEST_DATABASE_URL = 'sqlite+aiosqlite:///./test_campus_portal.db'
test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
TestSessionLocal = async_sessionmaker(
    bind=test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


@pytest.fixture(scope='function')
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database for each test"""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session
        await session.rollback()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database override"""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session: AsyncSession) -> Callable[..., Awaitable[User]]:
    """Factory for persisted users"""
    async def _make_user(role: UserRole = UserRole.STUDENT, **overrides) -> User:
        fields = {
            'email': fake.unique.email(),
            'hashed_password': get_password_hash(TEST_PASSWORD),
            'full_name': fake.name(),
            'role': role,
            'is_active': True,
        }
        if role == UserRole.STUDENT:
            fields['student_id'] = fake.unique.bothify('STU####??').upper()
            fields['department'] = 'Computer Science'
        fields.update(overrides)

        user = User(**fields)
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
async def test_user(make_user) -> User:
    """A student"""
    return await make_user(UserRole.STUDENT)


@pytest.fixture
async def other_user(make_user) -> User:
    """A second student"""
    return await make_user(UserRole.STUDENT)


@pytest.fixture
async def admin_user(make_user) -> User:
    return await make_user(UserRole.ADMIN)


@pytest.fixture
async def faculty_user(make_user) -> User:
    return await make_user(UserRole.FACULTY, department='Computer Science')


def headers_for(user: User) -> dict:
    """Bearer headers carrying a fresh access token for ``user``"""
    token = build_token_pair(user)['access_token']
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def auth_headers(test_user: User) -> dict:
    """Generate authentication headers for test user"""
    return headers_for(test_user)


@pytest.fixture
def other_auth_headers(other_user: User) -> dict:
    return headers_for(other_user)


@pytest.fixture
def admin_auth_headers(admin_user: User) -> dict:
    """Generate authentication headers for admin user"""
    return headers_for(admin_user)


@pytest.fixture
def faculty_auth_headers(faculty_user: User) -> dict:
    return headers_for(faculty_user)


@pytest.fixture
def create_book(client: AsyncClient, admin_auth_headers: dict):
    """POST a catalogue entry as admin and return its data"""
    async def _create_book(**overrides) -> dict:
        payload = {
            'title': fake.sentence(nb_words=3).rstrip('.'),
            'author': fake.name(),
            'isbn': fake.unique.numerify('978##########'),
            'category': 'technology',
            'total_copies': 1,
        }
        payload.update(overrides)
        response = await client.post('/api/library/books', json=payload, headers=admin_auth_headers)
        assert response.status_code == 201, response.text
        return response.json()['data']

    return _create_book


@pytest.fixture
def create_room(client: AsyncClient, admin_auth_headers: dict):
    """POST a hostel room as admin and return its data"""
    async def _create_room(**overrides) -> dict:
        payload = {
            'room_number': fake.unique.bothify('A-###'),
            'block': 'a',
            'floor': 1,
            'room_type': 'double',
            'capacity': 2,
            'monthly_rent': 4500.0,
        }
        payload.update(overrides)
        response = await client.post('/api/hostel/rooms', json=payload, headers=admin_auth_headers)
        assert response.status_code == 201, response.text
        return response.json()['data']

    return _create_room


@pytest.fixture
def token_headers() -> Callable[[User], dict]:
    """Headers factory for users created inside a test"""
    return headers_for
