"""
Seed script to populate roles, the permission catalog and demo data.

Run this script after database initialization to create:
- The Owner, Admin and Viewer roles with their levels
- The permission catalog and each role's default permissions
- The default organization and demo users with their roles

Usage:
    uv run python -m scripts.seed_data
    uv run python -m scripts.seed_data --organization "Acme" --no-demo-users
"""
import argparse
import asyncio

from app.core.database.engine import AsyncSessionLocal, init_db
from app.core.database.seed import SeedConfig, seed_database
from app.utils import get_logger


log = get_logger(__name__)


def parse_args() -> SeedConfig:
    parser = argparse.ArgumentParser(description="Seed roles, permissions and demo data")
    parser.add_argument(
        "--organization",
        default="Default Organization",
        help="Name of the default organization (default: %(default)s)",
    )
    parser.add_argument(
        "--no-demo-users",
        action="store_true",
        help="Skip the owner/admin/viewer demo users",
    )
    args = parser.parse_args()

    config = SeedConfig(organization_name=args.organization)
    if args.no_demo_users:
        config.users = []
    return config


async def main(config: SeedConfig):
    """Create tables if needed, then seed."""
    log.info("Initializing database tables...")
    await init_db()

    async with AsyncSessionLocal() as db:
        try:
            summary = await seed_database(db, config)
        except Exception as e:
            log.error(f"Error seeding database: {e}", exc_info=True)
            raise

    log.info("Seeding completed successfully!")
    for key, value in summary.model_dump().items():
        log.info(f"  - {key}: {value}")


if __name__ == "__main__":
    asyncio.run(main(parse_args()))
