"""
Fixtures compartidas para Pytest.
Configura base de datos de test, usuarios por rol y clientes HTTP.
"""

import os

# bcrypt barato para los tests; debe fijarse antes de importar la app
os.environ.setdefault("BCRYPT_ROUNDS", "4")

from collections.abc import AsyncGenerator  # noqa: E402
from datetime import date, timedelta  # noqa: E402
from pathlib import Path  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool  # noqa: E402

from app.auth.jwt import create_access_token  # noqa: E402
from app.core.security import hash_password  # noqa: E402
from app.database import Base, get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.models.assignment import UserAssignment  # noqa: E402
from app.models.user import User, UserRole, UserStatus  # noqa: E402
from app.services.access_service import PracticeScope  # noqa: E402

# ── Engine de test (SQLite async en archivo) ─────────
TEST_DB_PATH = Path(__file__).resolve().parent / "test.db"
TEST_DATABASE_URL = f"sqlite+aiosqlite:///{TEST_DB_PATH}"

test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
test_session_factory = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)

PASSWORD = "Secret123"


@pytest_asyncio.fixture(autouse=True)
async def setup_database():
    """Crea y destruye las tablas para cada test."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Sesión directa para preparar datos y verificar el estado de la base."""
    async with test_session_factory() as session:
        yield session


async def _get_test_db() -> AsyncGenerator[AsyncSession, None]:
    """Misma semántica que get_db: commit al final, rollback ante error."""
    async with test_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Cliente HTTP de test que usa la DB de test."""
    app.dependency_overrides[get_db] = _get_test_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Usuarios ─────────────────────────────────────────

async def create_user(
    session: AsyncSession,
    email: str,
    role: UserRole = UserRole.DENTIST,
    status: UserStatus = UserStatus.APPROVED,
    practice_name: str | None = None,
    first_name: str = "Test",
    last_name: str = "User",
) -> User:
    user = User(
        email=email,
        password_hash=hash_password(PASSWORD),
        role=role,
        status=status,
        practice_name=practice_name,
        first_name=first_name,
        last_name=last_name,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role.value)}"}


@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory de usuarios persistidos: `await make_user(email, role=..., status=...)`."""

    async def _make(email: str, **kwargs) -> User:
        return await create_user(db_session, email, **kwargs)

    return _make


@pytest.fixture
def headers_for():
    return auth_headers


@pytest_asyncio.fixture
async def super_admin(db_session: AsyncSession) -> User:
    return await create_user(
        db_session, "admin@test.com", role=UserRole.SUPER_ADMIN,
        first_name="Super", last_name="Admin",
    )


@pytest_asyncio.fixture
async def dentist(db_session: AsyncSession) -> User:
    return await create_user(
        db_session, "dentist@test.com", practice_name="Sonrisas",
        first_name="Diego", last_name="Rojas",
    )


@pytest_asyncio.fixture
async def other_dentist(db_session: AsyncSession) -> User:
    return await create_user(
        db_session, "other@test.com", practice_name="Dental Norte",
        first_name="Olga", last_name="Paz",
    )


@pytest_asyncio.fixture
async def assistant(db_session: AsyncSession, dentist: User) -> User:
    """Asistente ya asignado al dentista del consultorio 'Sonrisas'."""
    user = await create_user(
        db_session, "assistant@test.com", role=UserRole.ASSISTANT,
        practice_name="Sonrisas", first_name="Ana", last_name="Lopez",
    )
    db_session.add(UserAssignment(dentist_id=dentist.id, assistant_id=user.id))
    await db_session.commit()
    return user


@pytest.fixture
def dentist_headers(dentist: User) -> dict:
    return auth_headers(dentist)


@pytest.fixture
def other_dentist_headers(other_dentist: User) -> dict:
    return auth_headers(other_dentist)


@pytest.fixture
def assistant_headers(assistant: User) -> dict:
    return auth_headers(assistant)


@pytest.fixture
def admin_headers(super_admin: User) -> dict:
    return auth_headers(super_admin)


@pytest.fixture
def dentist_scope(dentist: User) -> PracticeScope:
    return PracticeScope(user=dentist, dentist_id=dentist.id)


@pytest.fixture
def run_in_session():
    """Ejecuta un servicio en su propia sesión, con commit/rollback como un request."""

    async def _run(service, *args, **kwargs):
        async with test_session_factory() as session:
            try:
                result = await service(session, *args, **kwargs)
                await session.commit()
                return result
            except Exception:
                await session.rollback()
                raise

    return _run


# ── Datos de dominio ─────────────────────────────────

@pytest.fixture
def tomorrow() -> date:
    return date.today() + timedelta(days=1)


@pytest_asyncio.fixture
async def patient(client: AsyncClient, dentist_headers: dict) -> dict:
    response = await client.post(
        "/api/patients",
        json={"first_name": "Ana", "last_name": "Ivanova", "phone": "0991234567"},
        headers=dentist_headers,
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]
