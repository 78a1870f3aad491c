"""Seed database with demo data."""
import asyncio
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, insert, select

from workflowpro.config import settings
from workflowpro.database import Database
from workflowpro.models import DiscussionPost, LookupListValue, MCLReport, ProblemReport, User

USERS = [
    ("EMP001", "Carol Admin", "carol.admin@company.com", "Admin"),
    ("EMP002", "Bob Manager", "bob.manager@company.com", "Manager"),
    ("EMP003", "Alice User", "alice.user@company.com", "User"),
    ("EMP004", "David Support", "david.support@company.com", "User"),
    ("EMP005", "Emma Lead", "emma.lead@company.com", "Manager"),
    ("EMP006", "Sarah Tech", "sarah.tech@company.com", "User"),
    ("EMP007", "Mike Developer", "mike.developer@company.com", "User"),
    ("EMP008", "Lisa Analyst", "lisa.analyst@company.com", "User"),
]

LOOKUP_LISTS = {
    "clients": ["TechCorp Solutions", "InnovateSoft", "DataFlow Inc", "CloudTech Ltd", "SystemsPro"],
    "visit_types": ["On-site Support", "Remote Support", "Consultation", "Emergency Visit"],
    "purposes": ["System Maintenance", "Troubleshooting", "Installation", "Training", "Consultation"],
    "shifts": ["Day Shift", "Evening Shift", "Night Shift"],
    "environments": ["Production", "Staging", "UAT", "Development"],
}
# Lists start out owned by Bob Manager.
LOOKUP_OWNER = "EMP002"


def _at(value: str) -> datetime:
    return datetime.fromisoformat(value).replace(tzinfo=timezone.utc)


def _uniform(rows: list[dict]) -> list[dict]:
    """executemany compiles from the first row, so every row needs the same keys."""
    keys = {key for row in rows for key in row}
    return [{key: row.get(key) for key in keys} for row in rows]


async def seed(db: Database) -> bool:
    """Insert demo rows in one transaction. Returns False when users already exist."""

    async def _work(conn) -> bool:
        users = User.__table__
        existing = (await conn.execute(select(func.count()).select_from(users))).scalar_one()
        if existing:
            return False

        await conn.execute(
            insert(users),
            [
                {"emp_id": emp_id, "name": name, "email": email, "role": role}
                for emp_id, name, email, role in USERS
            ],
        )

        lookup_ids: dict[tuple[str, str], int] = {}
        lookups = LookupListValue.__table__
        for list_name, values in LOOKUP_LISTS.items():
            for position, value in enumerate(values, start=1):
                lookup_ids[(list_name, value)] = (
                    await conn.execute(
                        insert(lookups)
                        .values(list_name=list_name, value=value, sort_order=position, manager_id=LOOKUP_OWNER)
                        .returning(lookups.c.id)
                    )
                ).scalar_one()

        def lookup(list_name: str, value: str) -> int:
            return lookup_ids[(list_name, value)]

        await conn.execute(
            insert(MCLReport.__table__),
            _uniform([
                {
                    "id": "MCL-2025-001",
                    "user_id": "EMP003",
                    "client_name_id": lookup("clients", "TechCorp Solutions"),
                    "visit_type_id": lookup("visit_types", "On-site Support"),
                    "purpose_id": lookup("purposes", "System Maintenance"),
                    "shift_id": lookup("shifts", "Day Shift"),
                    "entry_at": _at("2025-06-14T09:00:00"),
                    "exit_at": _at("2025-06-14T17:00:00"),
                    "remark": "Performed routine system maintenance and security updates",
                    "status": "Approved",
                    "approved_by": "EMP002",
                    "approved_at": _at("2025-06-15T09:00:00"),
                },
                {
                    "id": "MCL-2025-002",
                    "user_id": "EMP006",
                    "client_name_id": lookup("clients", "SystemsPro"),
                    "visit_type_id": lookup("visit_types", "Remote Support"),
                    "purpose_id": lookup("purposes", "Troubleshooting"),
                    "shift_id": lookup("shifts", "Evening Shift"),
                    "entry_at": _at("2025-06-13T14:00:00"),
                    "exit_at": _at("2025-06-13T22:00:00"),
                    "remark": "Resolved network connectivity issues and optimized performance",
                    "status": "Pending Approval",
                },
                {
                    "id": "MCL-2025-003",
                    "user_id": "EMP007",
                    "client_name_id": lookup("clients", "DataFlow Inc"),
                    "visit_type_id": lookup("visit_types", "Consultation"),
                    "purpose_id": lookup("purposes", "Training"),
                    "shift_id": lookup("shifts", "Day Shift"),
                    "entry_at": _at("2025-06-11T08:00:00"),
                    "exit_at": _at("2025-06-11T16:00:00"),
                    "remark": "Conducted development team training on new frameworks",
                    "status": "Rejected",
                    "rejected_by": "EMP005",
                    "rejected_at": _at("2025-06-12T10:00:00"),
                    "rejection_reason": "Needs follow-up details",
                },
            ]),
        )

        received = _at("2025-06-14T12:00:00")
        await conn.execute(
            insert(ProblemReport.__table__),
            _uniform([
                {
                    "id": "PRB-2025-001",
                    "user_id": "EMP006",
                    "client_name_id": lookup("clients", "SystemsPro"),
                    "environment_id": lookup("environments", "Production"),
                    "problem_statement": "Backup system failing intermittently",
                    "received_at": received,
                    "rca": "Disk space issues on backup server",
                    "solution": "Cleaned up old backups and increased storage capacity",
                    "attended_by_id": "EMP006",
                    "status": "Closed",
                    "sla_hours": 8,
                    "closed_at": received + timedelta(hours=6),
                },
                {
                    "id": "PRB-2025-002",
                    "user_id": "EMP004",
                    "client_name_id": lookup("clients", "TechCorp Solutions"),
                    "environment_id": lookup("environments", "Staging"),
                    "problem_statement": "SSL certificate expiration warnings",
                    "received_at": _at("2025-06-13T10:00:00"),
                    "rca": "Certificate renewal process not automated",
                    "attended_by_id": "EMP004",
                    "status": "In Progress",
                    "sla_hours": 24,
                },
                {
                    "id": "PRB-2025-003",
                    "user_id": "EMP007",
                    "client_name_id": lookup("clients", "DataFlow Inc"),
                    "environment_id": lookup("environments", "Production"),
                    "problem_statement": "Application memory leaks causing crashes",
                    "received_at": _at("2025-06-11T16:00:00"),
                    "status": "Open",
                    "sla_hours": 2,
                },
            ]),
        )

        posts = DiscussionPost.__table__
        thread_id = (
            await conn.execute(
                insert(posts)
                .values(
                    title="SSL Certificate Management Best Practices",
                    content=(
                        "Following recent SSL certificate issues, what tools and processes "
                        "have worked well for automating certificate management?"
                    ),
                    report_type="Problem",
                    report_id="PRB-2025-002",
                    user_id="EMP004",
                )
                .returning(posts.c.id)
            )
        ).scalar_one()
        await conn.execute(
            insert(posts).values(
                title="",
                content="We use certbot with a weekly renewal job, works well so far.",
                user_id="EMP006",
                parent_post_id=thread_id,
            )
        )
        return True

    return await db.write("Seed demo data", _work)


async def main() -> None:
    db = Database.from_settings(settings)
    try:
        await db.create_schema()
        if await seed(db):
            print("Database seeded successfully!")
            print("\nDemo users:")
            for emp_id, name, _, role in USERS:
                print(f"  {emp_id} {name} ({role})")
        else:
            print("Database already has users, skipping seed.")
    finally:
        await db.dispose()


if __name__ == "__main__":
    asyncio.run(main())
