import asyncio
import re
import sys

import asyncpg

from src.config import settings

_DB_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


async def create_db() -> bool:
    db_name = settings.database.DB_NAME
    if not _DB_NAME_RE.match(db_name):
        print(f"Error: invalid database name {db_name!r}")
        return False

    try:
        # Connect to default postgres DB to create new DB
        sys_conn = await asyncpg.connect(
            user=settings.database.DB_USER,
            password=settings.database.DB_PASSWORD,
            host=settings.database.DB_HOST,
            port=settings.database.DB_PORT,
            database='postgres'
        )
    except (asyncpg.PostgresError, OSError) as e:
        print(f"Error: {e}")
        return False

    try:
        exists = await sys_conn.fetchval("SELECT 1 FROM pg_database WHERE datname = $1", db_name)
        if not exists:
            print(f"Creating database {db_name}...")
            await sys_conn.execute(f'CREATE DATABASE "{db_name}"')
            print("Database created.")
        else:
            print(f"Database {db_name} already exists.")
    except asyncpg.PostgresError as e:
        print(f"Error: {e}")
        return False
    finally:
        await sys_conn.close()

    return True

if __name__ == "__main__":
    sys.exit(0 if asyncio.run(create_db()) else 1)
