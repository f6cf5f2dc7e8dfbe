"""Seed sample data for local development."""
from __future__ import annotations

from dotenv import load_dotenv

load_dotenv()

from app import models
from app.config import get_settings
from app.db import create_all, get_sessionmaker


def main() -> None:
    settings = get_settings()
    print(f"Using database: {settings.database_url}")

    create_all()
    session = get_sessionmaker()()

    try:
        asha = models.User(username="asha", email="asha@example.com", role=models.UserRole.donor)
        ravi = models.User(username="ravi", email="ravi@example.com", role=models.UserRole.fundraiser)
        session.add_all([asha, ravi])
        session.flush()

        session.add(models.DonorProfile(user_id=asha.id))
        session.add_all(
            [
                models.Cause(
                    title="Clean water for Kolar schools",
                    category="education",
                    fundraiser_id=ravi.id,
                    goal_amount=200_000,
                    status=models.CauseStatus.approved,
                ),
                models.Cause(
                    title="Flood relief kits",
                    category="disaster",
                    fundraiser_id=ravi.id,
                    goal_amount=50_000,
                    status=models.CauseStatus.pending,
                ),
            ]
        )
        session.commit()
        print("Seed data inserted.")
    finally:
        session.close()


if __name__ == "__main__":
    main()
