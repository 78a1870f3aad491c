from __future__ import annotations

import time
from collections.abc import AsyncIterator
from pathlib import Path

import pytest
from jose import jwt
from sqlalchemy import insert

from workflowpro.config import settings
from workflowpro.database import ConnectionPool, Database
from workflowpro.models import User
from workflowpro.security import Identity, Role
from workflowpro.services.retry import RetryPolicy

ADMIN = Identity(emp_id="EMP001", role=Role.ADMIN, name="Carol Admin")
MANAGER = Identity(emp_id="EMP002", role=Role.MANAGER, name="Bob Manager")
ALICE = Identity(emp_id="EMP003", role=Role.USER, name="Alice User")
OTHER_MANAGER = Identity(emp_id="EMP005", role=Role.MANAGER, name="Emma Lead")
JANE = Identity(emp_id="EMP010", role=Role.USER, name="Jane Doe")

DIRECTORY = [
    ("EMP001", "Carol Admin", "Admin"),
    ("EMP002", "Bob Manager", "Manager"),
    ("EMP003", "Alice User", "User"),
    ("EMP005", "Emma Lead", "Manager"),
    ("EMP010", "Jane Doe", "User"),
]


async def _sleep_nowhere(_delay: float) -> None:
    return None


def create_access_token(claims: dict, *, expires_in: int = 3600) -> str:
    """Sign a token the way the identity provider does."""
    now = int(time.time())
    payload = {"iat": now, "exp": now + expires_in, "type": "access", **claims}
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def auth_headers(identity: Identity) -> dict[str, str]:
    token = create_access_token({"sub": identity.emp_id, "role": identity.role.value, "name": identity.name})
    return {"Authorization": f"Bearer {token}"}


def fast_retry_policy(max_attempts: int = 3) -> RetryPolicy:
    return RetryPolicy(max_attempts=max_attempts, base_delay=0.0, max_jitter=0.0, sleep=_sleep_nowhere)


@pytest.fixture
async def empty_db(tmp_path: Path) -> AsyncIterator[Database]:
    """File-backed SQLite database with the schema created and no rows."""
    pool = ConnectionPool.create(
        f"sqlite+aiosqlite:///{tmp_path / 'workflowpro.db'}",
        min_size=1,
        max_size=5,
        idle_timeout=300,
        connect_timeout=5.0,
    )
    database = Database(pool, fast_retry_policy())
    await database.create_schema()
    yield database
    await database.dispose()


@pytest.fixture
async def db(empty_db: Database) -> Database:
    """Schema plus the test user directory."""

    async def _users(conn) -> None:
        await conn.execute(
            insert(User.__table__),
            [
                {"emp_id": emp_id, "name": name, "email": f"{emp_id.lower()}@example.com", "role": role}
                for emp_id, name, role in DIRECTORY
            ],
        )

    await empty_db.write("Seed test users", _users)
    return empty_db
