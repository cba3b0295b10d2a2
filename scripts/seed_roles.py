"""
Seed Roles & Permissions — admin / manager / employee and their grants.

Usage:
    python scripts/seed_roles.py                       # Uses development DB
    python scripts/seed_roles.py --env production      # Uses production DB
    python scripts/seed_roles.py --admin-email a@b.fr  # Also creates an admin user

This script is idempotent — safe to run multiple times.
"""

import argparse
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import create_app
from app.core.domain import RoleName
from app.models import db
from app.models.auth import Permission, Role, RolePermission, User
from app.services.permission_service import seed_permissions


def seed_admin(email, name="Administrateur"):
    existing = User.query.filter_by(email=email).first()
    if existing:
        print(f"  Admin: already exists (id={existing.id})")
        return existing

    role = Role.query.filter_by(name=RoleName.ADMIN.value).first()
    user = User(email=email, name=name, role_id=role.id if role else None)
    db.session.add(user)
    db.session.commit()
    print(f"  Admin: created (id={user.id}, email={email})")
    return user


def main():
    parser = argparse.ArgumentParser(description="Seed roles, permissions and an optional admin user")
    parser.add_argument("--env", default="development", help="App environment")
    parser.add_argument("--admin-email", default=None, help="Create an admin user with this email")
    args = parser.parse_args()

    os.environ.setdefault("APP_ENV", args.env)
    app = create_app(args.env)

    with app.app_context():
        print("=" * 60)
        print("  SEED: Roles & Permissions")
        print("=" * 60)

        created = seed_permissions()
        print(f"\n  Created: {created}")

        if args.admin_email:
            seed_admin(args.admin_email)

        print("\n" + "=" * 60)
        print("  SUMMARY")
        print("=" * 60)
        print(f"  Permissions: {Permission.query.count()}")
        print(f"  Roles:       {Role.query.count()}")
        print(f"  Role-Perm:   {RolePermission.query.count()}")
        print(f"  Users:       {User.query.count()}")

        print("\nRole → Permission Matrix:")
        for role_name in RoleName:
            role = Role.query.filter_by(name=role_name.value).first()
            if role:
                print(f"  {role.name:10s}: {role.role_permissions.count():3d} permissions")

        print("\nSeed complete!")


if __name__ == "__main__":
    main()
