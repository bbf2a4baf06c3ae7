"""
Seed Demo Classes

Registers a few classes with small capacities so the enrollment and waitlist
flow can be tried locally. Existing classes are left untouched.

Usage:
    python scripts/seed_demo_classes.py
"""

import asyncio
import sys
from pathlib import Path

# Add the src directory to the path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from enrollment_hub.core.database import async_session_maker, close_db, init_db
from enrollment_hub.modules.classes.repository import ClassCapacityRepository

DEMO_CLASSES = [
    {"class_id": "math-101", "title": "Algebra I", "capacity": 2, "teacher_id": "t-okafor"},
    {"class_id": "bio-201", "title": "Cell Biology", "capacity": 3, "teacher_id": "t-mensah"},
    {"class_id": "hist-110", "title": "World History", "capacity": 25, "teacher_id": None},
]


async def seed_demo_classes() -> None:
    """Create the demo classes that don't exist yet."""
    await init_db()

    async with async_session_maker() as db:
        for demo in DEMO_CLASSES:
            existing = await ClassCapacityRepository.get_by_class_id(db, demo["class_id"])
            if existing:
                print(f"Class already exists: {existing.class_id} ({existing.enrolled_count}/{existing.capacity})")
                continue

            record = await ClassCapacityRepository.create(db, **demo)
            print(f"Created class {record.class_id}: {demo['title']} (capacity {record.capacity})")

        await db.commit()

    await close_db()


if __name__ == "__main__":
    asyncio.run(seed_demo_classes())
