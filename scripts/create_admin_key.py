"""Script to create an API key for a user."""

import argparse
import asyncio
import sys

sys.path.insert(0, ".")

from visual_translator.auth.security import create_api_key
from visual_translator.db.session import get_engine, get_session_maker, init_db


async def main(name: str, user_id: str, expires_in_days: int | None):
    """Create an API key acting on behalf of `user_id`."""
    print("Initializing database...")
    await init_db()

    print(f"Creating API key for user {user_id}...")
    async with get_session_maker()() as db:
        api_key, full_key = await create_api_key(
            db,
            name=name,
            user_id=user_id,
            expires_in_days=expires_in_days,
        )
        await db.commit()

        print("\n" + "=" * 60)
        print("API KEY CREATED SUCCESSFULLY")
        print("=" * 60)
        print(f"\nAPI Key: {full_key}")
        print(f"Key ID:  {api_key.id}")
        print(f"Prefix:  {api_key.key_prefix}")
        print("\nSAVE THIS KEY NOW - IT WILL NOT BE SHOWN AGAIN!")
        print("=" * 60)

    await get_engine().dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("user_id", help="UUID of the user the key acts for")
    parser.add_argument("--name", default="Admin Key")
    parser.add_argument("--expires-in-days", type=int, default=None)
    args = parser.parse_args()

    asyncio.run(main(args.name, args.user_id, args.expires_in_days))
