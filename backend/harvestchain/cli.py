"""Management CLI.

Usage:
    python -m harvestchain.cli init-db                         # Create tables (local / SQLite runs)
    python -m harvestchain.cli issue-token USER_ID ROLE [NAME]  # Mint an access token for tooling
"""

import asyncio
import sys

from harvestchain.auth.jwt import create_access_token
from harvestchain.database import Base, engine
from harvestchain.models import *  # noqa: F401,F403 register every table
from harvestchain.schemas.auth import Role


async def _create_all() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()


def init_db():
    """Create all tables directly; production databases use Alembic instead."""
    asyncio.run(_create_all())
    print(f"  Created {len(Base.metadata.tables)} tables")


def issue_token(user_id: str, role: str, name: str = "") -> str:
    # Raises ValueError for an unknown role
    return create_access_token(user_id=user_id, role=Role(role).value, name=name)


if __name__ == "__main__":
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    if cmd == "init-db":
        init_db()
    elif cmd == "issue-token" and len(sys.argv) >= 4:
        print(issue_token(*sys.argv[2:5]))
    else:
        print(__doc__)
        sys.exit(1)
