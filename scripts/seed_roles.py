"""
Seed Roles — ADMIN / QA / BA / TESTER system roles, optionally a demo organization.

Usage:
    python scripts/seed_roles.py              # Uses development DB
    python scripts/seed_roles.py --env production   # Uses production DB
    python scripts/seed_roles.py --demo       # + demo organization and admin

This script is idempotent — safe to run multiple times.
"""

import argparse
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import create_app
from app.models import db
from app.models.auth import ROLE_ADMIN, SYSTEM_ROLES, Organization, Role, User
from app.services.user_service import create_user, ensure_system_roles

DEMO_ORGANIZATION = "Demo QA"
DEMO_ADMIN = {
    "username": "admin",
    "email": "admin@demo-qa.example.com",
    "password": "DemoAdmin2026!",
    "full_name": "Demo Admin",
}


def seed_demo_organization():
    """Create the demo organization and its first admin."""
    organization = Organization.query.filter_by(name=DEMO_ORGANIZATION).first()
    if organization is None:
        organization = Organization(name=DEMO_ORGANIZATION, domain="demo-qa.example.com",
                                    subscription_plan="FREE", is_active=True)
        db.session.add(organization)
        db.session.flush()
        print(f"  Organization: created (id={organization.id})")
    else:
        print(f"  Organization: already exists (id={organization.id})")

    existing = User.query.filter_by(username=DEMO_ADMIN["username"]).first()
    if existing:
        print(f"  Demo admin: already exists (id={existing.id})")
        db.session.commit()
        return existing

    user = create_user(
        organization_id=organization.id,
        username=DEMO_ADMIN["username"],
        email=DEMO_ADMIN["email"],
        password=DEMO_ADMIN["password"],
        role_names=[ROLE_ADMIN],
        full_name=DEMO_ADMIN["full_name"],
    )
    db.session.commit()
    print(f"  Demo admin: created (id={user.id}, username={DEMO_ADMIN['username']}, "
          f"password={DEMO_ADMIN['password']})")
    return user


def main():
    parser = argparse.ArgumentParser(description="Seed system roles and an optional demo organization")
    parser.add_argument("--env", default="development", help="App environment")
    parser.add_argument("--demo", action="store_true", help="Also create a demo organization + admin")
    args = parser.parse_args()

    os.environ.setdefault("APP_ENV", args.env)
    app = create_app(args.env)

    with app.app_context():
        print("=" * 60)
        print("  SEED: System Roles")
        print("=" * 60)

        created = ensure_system_roles()
        print(f"  Roles: {created} created, {len(SYSTEM_ROLES) - created} already existed")

        if args.demo:
            print("\nSeeding demo organization...")
            seed_demo_organization()

        print("\n" + "=" * 60)
        print("  SUMMARY")
        print("=" * 60)
        print(f"  Roles:         {Role.query.count()}")
        print(f"  Organizations: {Organization.query.count()}")
        print(f"  Users:         {User.query.count()}")
        print("\nSeed complete!")


if __name__ == "__main__":
    main()
