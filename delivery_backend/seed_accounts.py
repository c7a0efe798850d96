"""
Database seeding script for initial accounts.

Creates one admin and one customer account and prints a development
identity assertion for each. Run this after the database is reachable.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from delivery_backend.app.core.jwt import create_identity_token
from delivery_backend.app.db.session import AsyncSessionLocal, Base, engine
from delivery_backend.app.models.account import Account
from delivery_backend.app.models.enums import AccountRole, AccountStatus
import delivery_backend.app.main  # noqa: F401  registers every model with Base

SEED_ACCOUNTS = [
    ("seed-admin", "admin@delivery.local", "Admin", AccountRole.ADMIN),
    ("seed-customer", "customer@delivery.local", "Customer", AccountRole.USER),
]


async def seed_accounts():
    """
    Seed initial accounts with different roles.

    Existing accounts (matched by uid) are left untouched.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting account seeding...")

        for uid, email, name, role in SEED_ACCOUNTS:
            result = await db.execute(select(Account).where(Account.uid == uid))
            if result.scalar_one_or_none():
                print(f"ℹ️  {email} already exists, skipping")
                continue

            db.add(Account(
                uid=uid,
                email=email,
                name=name,
                provider="seed",
                role=role,
                status=AccountStatus.ACTIVE,
            ))
            print(f"✅ Created {role.value.upper()} account ({email})")

        await db.commit()

    print("\n🎉 Account seeding completed!")
    print("\nDevelopment bearer assertions:")
    for uid, email, _, role in SEED_ACCOUNTS:
        print(f"  - {role.value:<5} {create_identity_token(uid, email)}")
    print("\nNote: riders apply via POST /v1/riders and are approved by an admin")


if __name__ == "__main__":
    asyncio.run(seed_accounts())
