"""
Create the first admin client so the admin API can be used.
Run with: python -m scripts.bootstrap_admin --client-id admin [--secret ...]

The raw secret is printed once and never stored.
"""

import argparse
import asyncio
import sys
from typing import Optional
from sqlalchemy import select
from filtro_api.database import engine, Base, async_session
from filtro_api.models import Client
from filtro_api.passwords import generate_secret, hash_secret


async def bootstrap(client_id: str, secret: Optional[str]) -> int:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        existing = await session.scalar(select(Client.id).where(Client.client_id == client_id))
        if existing:
            print(f"Client '{client_id}' already exists.", file=sys.stderr)
            return 1

        raw_secret = secret or generate_secret()
        session.add(Client(
            client_id=client_id,
            secret_hash=hash_secret(raw_secret),
            scopes=["admin", "read", "write"],
            permissions=[
                {"method": "GET", "path": "^/api/.*"},
                {"method": "POST", "path": "^/api/.*"},
                {"method": "POST", "path": "^/webhooks/.*"},
            ],
            is_admin=True,
            status="active",
        ))
        await session.commit()

    print("Admin client created successfully. Save this secret now:")
    print(f"client_id: {client_id}")
    print(f"client_secret: {raw_secret}")
    return 0


async def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Create the bootstrap admin client")
    parser.add_argument("--client-id", default="admin")
    parser.add_argument("--secret", default=None, help="Use this secret instead of a random one")
    args = parser.parse_args(argv)
    try:
        return await bootstrap(args.client_id, args.secret)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
