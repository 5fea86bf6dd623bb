"""
Shared fixtures: an app on in-memory SQLite and an httpx client bound to it.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
import pytest
from httpx import ASGITransport

from neomed.core.config import Settings
from neomed.db.base import AppContext
from neomed.main import create_app

PASSWORD = "secret1"
VALID_CPF = "529.982.247-25"
OTHER_VALID_CPF = "111.444.777-35"


def make_settings(**overrides) -> Settings:
    values = {
        "database_url": "sqlite+aiosqlite://",
        "secret_key": "test-secret-key",
        "bcrypt_rounds": 4,
        "admin_email": "root@neomed.com.br",
        "mevo_api_url": "",
        "mevo_api_token": "",
        "mevo_api_key": "",
        "mevo_client_id": "",
        "mevo_client_secret": "",
        "sentry_dsn": None,
        "api_url": "http://testserver",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@dataclass
class Account:
    user: Dict[str, Any]
    token: str

    @property
    def id(self) -> str:
        return self.user["id"]

    @property
    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


def patient_profile(cpf: str = VALID_CPF, **overrides) -> Dict[str, Any]:
    profile = {
        "cpf": cpf,
        "phone": "(11) 98765-4321",
        "dateOfBirth": "1990-05-12",
        "gender": "female",
    }
    profile.update(overrides)
    return profile


async def register(
    client: httpx.AsyncClient,
    email: str,
    password: str = PASSWORD,
    name: Optional[str] = None,
    **extra,
) -> httpx.Response:
    body = {"email": email, "password": password, "name": name or email.split("@")[0].title()}
    body.update(extra)
    return await client.post("/auth/register", json=body)


async def register_account(client: httpx.AsyncClient, email: str, **extra) -> Account:
    response = await register(client, email, **extra)
    assert response.status_code == 201, response.text
    data = response.json()
    return Account(user=data["user"], token=data["token"])


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
async def app(settings):
    application = create_app(settings)
    yield application
    await application.state.context.close()


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


@pytest.fixture
async def context(settings):
    """Application context for service-level tests (no HTTP)."""
    ctx = AppContext(settings)
    await ctx.ensure_schema()
    yield ctx
    await ctx.close()


@pytest.fixture
async def admin(client) -> Account:
    return await register_account(client, "admin@clinica.com.br", name="Ana Admin")


@pytest.fixture
async def doctor(client, admin) -> Account:
    return await register_account(client, "doc@clinica.com.br", name="Dr. Carlos", role="doctor")


@pytest.fixture
async def patient(client, doctor) -> Account:
    return await register_account(
        client,
        "maria@paciente.com.br",
        name="Maria Souza",
        role="patient",
        doctorId=doctor.id,
        patientProfile=patient_profile(),
    )
