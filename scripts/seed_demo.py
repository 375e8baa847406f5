#!/usr/bin/env python3
"""
Seed demo hospitals into the hosted backend.

Writes bypass row-level security, so this needs the service role key:
    SUPABASE_URL=... SUPABASE_SERVICE_ROLE_KEY=... python scripts/seed_demo.py 5
"""

import asyncio
import random
import sys

from faker import Faker

from hconnect.config import SUPABASE_URL_VAR, get_env
from hconnect.gateway import DataGateway
from hconnect.identity import connect

NUM_HOSPITALS = 5

fake = Faker()
random.seed(42)
Faker.seed(42)


def fake_hospital():
    city = fake.city()
    return {
        "name": f"{city} {random.choice(['General', 'Community', 'Memorial', 'Regional'])} Hospital",
        "address": fake.street_address(),
        "city": city,
        "phone": fake.phone_number(),
        "email": fake.company_email(),
    }


async def seed_hospitals(gateway: DataGateway, n: int = NUM_HOSPITALS):
    rows = [fake_hospital() for _ in range(n)]
    res = await gateway.table("hospitals").insert(rows).select("id, name").execute()
    return res.data or []


async def seed(n: int):
    # The service role key bypasses row level security.
    _, gateway = await connect(get_env(SUPABASE_URL_VAR), get_env("SUPABASE_SERVICE_ROLE_KEY"))
    return await seed_hospitals(gateway, n)


def main():
    n = int(sys.argv[1]) if len(sys.argv) > 1 else NUM_HOSPITALS

    print("=" * 60)
    print(f"Seeding {n} hospitals")
    print("=" * 60)
    created = asyncio.run(seed(n))
    for row in created:
        print(f"  {row['id']}  {row['name']}")
    print(f"\nDone: {len(created)} hospitals inserted.")


if __name__ == "__main__":
    main()
