"""Identity directory: active users, display-name resolution for mentions, and user maintenance."""
from __future__ import annotations

import logging

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncConnection

from ..database import Database, is_unique_violation
from ..domain_errors import NotFound, ValidationFailed
from ..models import User
from ..schemas import DirectoryUser, UserCreate, UserResponse, UserUpdate
from ..security import Identity, Role, require_role

logger = logging.getLogger(__name__)

users = User.__table__


async def resolve_name_to_id(conn: AsyncConnection, display_name: str) -> str | None:
    """Employee id of the active user called `display_name`, if exactly one exists."""
    rows = (
        await conn.execute(
            select(users.c.emp_id)
            .where(users.c.name == display_name, users.c.is_active.is_(True))
            .limit(2)
        )
    ).all()
    if len(rows) != 1:
        return None
    return rows[0].emp_id


async def list_active_users_use_case(*, db: Database) -> list[DirectoryUser]:
    async def _work(conn: AsyncConnection) -> list[DirectoryUser]:
        rows = (
            await conn.execute(
                select(users.c.emp_id, users.c.name, users.c.role)
                .where(users.c.is_active.is_(True))
                .order_by(users.c.name)
            )
        ).all()
        return [DirectoryUser.model_validate(row) for row in rows]

    return await db.read("Get active users", _work)


async def get_user_use_case(*, db: Database, emp_id: str) -> DirectoryUser:
    async def _work(conn: AsyncConnection) -> DirectoryUser:
        row = (
            await conn.execute(
                select(users.c.emp_id, users.c.name, users.c.role).where(users.c.emp_id == emp_id)
            )
        ).first()
        if row is None:
            raise NotFound(code="USER_NOT_FOUND", message="User not found")
        return DirectoryUser.model_validate(row)

    return await db.read("Get user by ID", _work)


def _require_admin(actor: Identity) -> None:
    require_role(actor, Role.ADMIN, code="USER_ADMIN_FORBIDDEN", message="Only admins can manage users")


def _user_not_found(emp_id: str) -> NotFound:
    return NotFound(code="USER_NOT_FOUND", message="User not found", details={"emp_id": emp_id})


def _user_conflict(exc: IntegrityError) -> ValidationFailed:
    if is_unique_violation(exc):
        return ValidationFailed(
            code="USER_ALREADY_EXISTS",
            message="A user with this employee id or email already exists",
        )
    return ValidationFailed(
        code="USER_INVALID",
        message="User record was rejected by the database",
        details={"error": exc.orig.__class__.__name__},
    )


async def list_users_use_case(*, db: Database, actor: Identity) -> list[UserResponse]:
    """Every user, inactive ones included, newest first."""
    _require_admin(actor)

    async def _work(conn: AsyncConnection) -> list[UserResponse]:
        rows = (await conn.execute(select(users).order_by(users.c.created_at.desc(), users.c.emp_id))).all()
        return [UserResponse.model_validate(row) for row in rows]

    return await db.read("Get all users", _work)


async def create_user_use_case(*, db: Database, data: UserCreate, actor: Identity) -> UserResponse:
    _require_admin(actor)

    async def _work(conn: AsyncConnection) -> UserResponse:
        try:
            row = (
                await conn.execute(insert(users).values(is_active=True, **data.model_dump()).returning(*users.c))
            ).one()
        except IntegrityError as exc:
            raise _user_conflict(exc) from exc
        logger.info("User %s created by %s", data.emp_id, actor.emp_id)
        return UserResponse.model_validate(row)

    return await db.write("Create user", _work)


async def update_user_use_case(*, db: Database, emp_id: str, data: UserUpdate, actor: Identity) -> UserResponse:
    """Change name, email, role or the active flag. Unset fields are left alone."""
    _require_admin(actor)
    changes = {key: value for key, value in data.model_dump(exclude_unset=True).items() if value is not None}

    async def _work(conn: AsyncConnection) -> UserResponse:
        if not changes:
            row = (await conn.execute(select(users).where(users.c.emp_id == emp_id))).first()
        else:
            try:
                row = (
                    await conn.execute(
                        update(users).where(users.c.emp_id == emp_id).values(**changes).returning(*users.c)
                    )
                ).first()
            except IntegrityError as exc:
                raise _user_conflict(exc) from exc
        if row is None:
            raise _user_not_found(emp_id)
        if changes:
            logger.info("User %s updated by %s (%s)", emp_id, actor.emp_id, ", ".join(sorted(changes)))
        return UserResponse.model_validate(row)

    return await db.write("Update user", _work)


async def deactivate_user_use_case(*, db: Database, emp_id: str, actor: Identity) -> UserResponse:
    """Soft delete. Reports and posts keep pointing at the user; mentions stop resolving."""
    return await update_user_use_case(db=db, emp_id=emp_id, data=UserUpdate(is_active=False), actor=actor)
