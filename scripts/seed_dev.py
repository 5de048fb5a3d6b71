#!/usr/bin/env python
"""Seed the development database with a small marketplace.

Creates two verified users, a validated ad owned by the first, one staff
account per role and the default boost offers, then prints bearer tokens
for each identity so the API and sockets can be exercised by hand.

Constraints:
- Refuses to run in staging or prod (KIVENDI_ENV check)
- Idempotent via ON CONFLICT DO NOTHING on natural keys
- Never runs automatically (manual invocation only)

Usage:
    DATABASE_URL=... python scripts/seed_dev.py
"""

import os
import sys

SEED_USERS = (
    {"first_name": "Awa", "last_name": "Koné", "email": "awa@example.test", "is_verified": True},
    {
        "first_name": "Kofi",
        "last_name": "Mensah",
        "email": "kofi@example.test",
        "is_verified": True,
    },
)

SEED_STAFF = (
    {"email": "admin@example.test", "name": "Admin", "role": "admin"},
    {"email": "moderator@example.test", "name": "Modération", "role": "moderator"},
)

SEED_OFFERS = (
    {
        "name": "Boost 3 jours",
        "description": "Votre annonce en tête de liste pendant 3 jours",
        "duration_days": 3,
        "price": 500,
        "position_priority": 1,
        "features": ["Mise en avant"],
        "color": "#F5A623",
        "display_order": 1,
    },
    {
        "name": "Boost 7 jours",
        "description": "Une semaine de visibilité maximale",
        "duration_days": 7,
        "price": 1000,
        "position_priority": 2,
        "features": ["Mise en avant", "Badge premium"],
        "color": "#D0021B",
        "display_order": 2,
    },
)


def main():
    # 1. Environment check (hard fail in staging/prod)
    env = os.getenv("KIVENDI_ENV", "local")
    if env not in ("local", "test"):
        print(f"ERROR: seed_dev.py refuses to run in KIVENDI_ENV={env}")
        sys.exit(1)

    # 2. Check DATABASE_URL
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        print("ERROR: DATABASE_URL environment variable must be set")
        sys.exit(1)

    from sqlalchemy import select

    from kivendi.auth.verifier import mint_token
    from kivendi.config import get_settings
    from kivendi.db.models import Ad, Admin, BoostOffer, Category, SubCategory, User
    from kivendi.db.session import open_session, transaction
    from kivendi.db.upsert import conflict_insert

    settings = get_settings()

    # 3. Idempotent seeding
    with open_session() as db, transaction(db):
        for row in SEED_USERS:
            db.execute(conflict_insert(db, User).values(**row).on_conflict_do_nothing())
        for row in SEED_STAFF:
            db.execute(conflict_insert(db, Admin).values(**row).on_conflict_do_nothing())
        for row in SEED_OFFERS:
            db.execute(conflict_insert(db, BoostOffer).values(**row).on_conflict_do_nothing())
        db.execute(conflict_insert(db, Category).values(name="Véhicules").on_conflict_do_nothing())
        db.flush()

        category = db.scalars(select(Category).where(Category.name == "Véhicules")).one()
        db.execute(
            conflict_insert(db, SubCategory)
            .values(category_id=category.id, name="Motos")
            .on_conflict_do_nothing()
        )
        db.flush()

    with open_session() as db:
        users = db.scalars(
            select(User).where(User.email.in_([u["email"] for u in SEED_USERS])).order_by(User.id)
        ).all()
        staff_emails = [s["email"] for s in SEED_STAFF]
        staff = db.scalars(
            select(Admin).where(Admin.email.in_(staff_emails)).order_by(Admin.id)
        ).all()
        seller = users[0]
        sub_category = db.scalars(select(SubCategory).where(SubCategory.name == "Motos")).one()

        ad = db.scalars(select(Ad).where(Ad.user_id == seller.id)).first()
        ad_created = ad is None
        if ad is None:
            ad = Ad(
                user_id=seller.id,
                sub_category_id=sub_category.id,
                title="Moto Yamaha 125",
                description="Très bon état, papiers à jour",
                price=450000,
                city="Abidjan",
                is_validated=True,
            )
            db.add(ad)
            db.commit()

        # 4. Report
        db_display = database_url.split("@")[1] if "@" in database_url else database_url
        print(f"Database: {db_display}")
        print(f"KIVENDI_ENV: {env}")
        print()
        print(f"{'✓ Created' if ad_created else '• Exists'}: ad {ad.id} ({ad.title})")
        print()
        for user in users:
            token = mint_token(settings.jwt_secret, user.id, expires_in=7 * 24 * 3600)
            print(f"user {user.id} <{user.email}>\n  {token}")
        for admin in staff:
            token = mint_token(
                settings.jwt_secret, admin.id, expires_in=7 * 24 * 3600, role=admin.role
            )
            print(f"staff {admin.id} [{admin.role}] <{admin.email}>\n  {token}")


if __name__ == "__main__":
    main()
