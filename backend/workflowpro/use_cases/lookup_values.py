"""Lookup list maintenance (clients, visit types, purposes, shifts, environments)."""
from __future__ import annotations

import logging

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncConnection

from ..database import Database
from ..domain_errors import NotFound, Unauthorized, ValidationFailed
from ..models import LookupListValue
from ..schemas import LookupListSummary, LookupValueCreate, LookupValueOut, LookupValueRename
from ..security import Identity, can_edit_lookup_list

logger = logging.getLogger(__name__)

values_table = LookupListValue.__table__


def _value_not_found(list_name: str, value_id: int) -> NotFound:
    return NotFound(
        code="LOOKUP_VALUE_NOT_FOUND",
        message="Lookup value not found",
        details={"list_name": list_name, "value_id": value_id},
    )


async def _list_owner(conn: AsyncConnection, list_name: str) -> str | None:
    return (
        await conn.execute(
            select(func.min(values_table.c.manager_id)).where(values_table.c.list_name == list_name)
        )
    ).scalar()


async def _ensure_can_edit(conn: AsyncConnection, list_name: str, actor: Identity) -> str | None:
    owner_id = await _list_owner(conn, list_name)
    if not can_edit_lookup_list(actor, owner_id):
        raise Unauthorized(
            code="LOOKUP_LIST_FORBIDDEN",
            message="You cannot edit this lookup list",
            details={"list_name": list_name},
        )
    return owner_id


async def _get_value(conn: AsyncConnection, list_name: str, value_id: int):
    row = (
        await conn.execute(
            select(values_table).where(values_table.c.id == value_id, values_table.c.list_name == list_name)
        )
    ).first()
    if row is None:
        raise _value_not_found(list_name, value_id)
    return row


async def list_lookup_lists_use_case(*, db: Database) -> list[LookupListSummary]:
    async def _work(conn: AsyncConnection) -> list[LookupListSummary]:
        rows = (
            await conn.execute(
                select(
                    values_table.c.list_name,
                    func.count().label("value_count"),
                    func.min(values_table.c.manager_id).label("owner_id"),
                )
                .group_by(values_table.c.list_name)
                .order_by(values_table.c.list_name)
            )
        ).all()
        return [LookupListSummary.model_validate(row) for row in rows]

    return await db.read("Get lookup lists", _work)


async def list_lookup_values_use_case(*, db: Database, list_name: str) -> list[LookupValueOut]:
    async def _work(conn: AsyncConnection) -> list[LookupValueOut]:
        rows = (
            await conn.execute(
                select(values_table)
                .where(values_table.c.list_name == list_name)
                .order_by(values_table.c.sort_order)
            )
        ).all()
        return [LookupValueOut.model_validate(row) for row in rows]

    return await db.read("Get lookup values", _work)


async def create_lookup_value_use_case(
    *,
    db: Database,
    list_name: str,
    data: LookupValueCreate,
    actor: Identity,
) -> LookupValueOut:
    """Append a value, or insert it at `sort_order` and shift the rest down."""

    async def _work(conn: AsyncConnection) -> LookupValueOut:
        owner_id = await _ensure_can_edit(conn, list_name, actor)
        last = (
            await conn.execute(
                select(func.coalesce(func.max(values_table.c.sort_order), 0)).where(
                    values_table.c.list_name == list_name
                )
            )
        ).scalar_one()

        position = last + 1
        if data.sort_order is not None and data.sort_order <= last:
            position = data.sort_order
            # Two passes through negative positions keep (list_name, sort_order) unique throughout.
            shifted = (values_table.c.list_name == list_name) & (values_table.c.sort_order >= position)
            await conn.execute(update(values_table).where(shifted).values(sort_order=-(values_table.c.sort_order + 1)))
            await conn.execute(
                update(values_table)
                .where(values_table.c.list_name == list_name, values_table.c.sort_order < 0)
                .values(sort_order=-values_table.c.sort_order)
            )

        row = (
            await conn.execute(
                insert(values_table)
                .values(
                    list_name=list_name,
                    value=data.value,
                    sort_order=position,
                    manager_id=owner_id or actor.emp_id,
                )
                .returning(*values_table.c)
            )
        ).one()
        logger.info("Lookup value %r added to %s by %s", data.value, list_name, actor.emp_id)
        return LookupValueOut.model_validate(row)

    return await db.write("Create lookup value", _work)


async def rename_lookup_value_use_case(
    *,
    db: Database,
    list_name: str,
    value_id: int,
    data: LookupValueRename,
    actor: Identity,
) -> LookupValueOut:
    async def _work(conn: AsyncConnection) -> LookupValueOut:
        await _ensure_can_edit(conn, list_name, actor)
        await _get_value(conn, list_name, value_id)
        await conn.execute(update(values_table).where(values_table.c.id == value_id).values(value=data.value))
        return LookupValueOut.model_validate(await _get_value(conn, list_name, value_id))

    return await db.write("Update lookup value", _work)


async def delete_lookup_value_use_case(
    *,
    db: Database,
    list_name: str,
    value_id: int,
    actor: Identity,
) -> None:
    async def _work(conn: AsyncConnection) -> None:
        await _ensure_can_edit(conn, list_name, actor)
        await _get_value(conn, list_name, value_id)
        try:
            await conn.execute(delete(values_table).where(values_table.c.id == value_id))
        except IntegrityError as exc:
            raise ValidationFailed(
                code="LOOKUP_VALUE_IN_USE",
                message="Lookup value is referenced by existing reports",
                details={"list_name": list_name, "value_id": value_id},
            ) from exc

    await db.write("Delete lookup value", _work)


async def move_lookup_value_use_case(
    *,
    db: Database,
    list_name: str,
    value_id: int,
    direction: str,
    actor: Identity,
) -> list[LookupValueOut]:
    """Swap a value with its neighbour. Moving past either end is a no-op."""

    async def _work(conn: AsyncConnection) -> list[LookupValueOut]:
        await _ensure_can_edit(conn, list_name, actor)
        current = await _get_value(conn, list_name, value_id)

        query = select(values_table.c.id, values_table.c.sort_order).where(values_table.c.list_name == list_name)
        if direction == "up":
            query = query.where(values_table.c.sort_order < current.sort_order).order_by(
                values_table.c.sort_order.desc()
            )
        else:
            query = query.where(values_table.c.sort_order > current.sort_order).order_by(values_table.c.sort_order)
        neighbour = (await conn.execute(query.limit(1))).first()

        if neighbour is not None:
            # Park on a free negative slot so the unique (list_name, sort_order) holds mid-swap.
            await conn.execute(
                update(values_table).where(values_table.c.id == current.id).values(sort_order=-current.sort_order)
            )
            await conn.execute(
                update(values_table)
                .where(values_table.c.id == neighbour.id)
                .values(sort_order=current.sort_order)
            )
            await conn.execute(
                update(values_table).where(values_table.c.id == current.id).values(sort_order=neighbour.sort_order)
            )

        rows = (
            await conn.execute(
                select(values_table)
                .where(values_table.c.list_name == list_name)
                .order_by(values_table.c.sort_order)
            )
        ).all()
        return [LookupValueOut.model_validate(row) for row in rows]

    return await db.write("Move lookup value", _work)
