#!/usr/bin/env python3
"""
Demo Data Seed Script
Creates one company plus a staff, client and contractor login for local use.

Usage:
    python -m scripts.seed_demo [password]

Example:
    python -m scripts.seed_demo demo-password
"""
import sys
import os

# Add the parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.orm import Session
from app.database import SessionLocal, init_db
from app.models.db_models import CompanyDB, UserDB, UserRole
from app.auth import hash_password

DEMO_COMPANY = "Demo Outdoor Media"
DEMO_USERS = [
    ("staff", UserRole.STAFF, "Sam", "Staff"),
    ("client", UserRole.CLIENT, "Casey", "Client"),
    ("contractor", UserRole.CONTRACTOR, "Terry", "Contractor"),
]


def seed_demo(password: str) -> bool:
    """Create the demo company and users. Existing usernames are left untouched."""
    init_db()

    db: Session = SessionLocal()
    try:
        company = db.query(CompanyDB).filter(CompanyDB.name == DEMO_COMPANY).first()
        if company is None:
            company = CompanyDB(name=DEMO_COMPANY, contact_email="ops@demo.example")
            db.add(company)
            db.flush()
            print(f"Created company '{DEMO_COMPANY}' (id={company.id})")

        password_hash = hash_password(password)
        created = 0
        for username, role, first_name, last_name in DEMO_USERS:
            if db.query(UserDB).filter(UserDB.username == username).first():
                print(f"User '{username}' already exists, skipping.")
                continue
            db.add(UserDB(
                username=username,
                password_hash=password_hash,
                first_name=first_name,
                last_name=last_name,
                role=role,
                company_id=company.id if role == UserRole.CLIENT else None,
            ))
            created += 1
            print(f"Created {role.value} user '{username}'")

        db.commit()
        print(f"\nDone: {created} user(s) created.")
        return True

    except Exception as e:
        db.rollback()
        print(f"Error seeding demo data: {e}")
        return False
    finally:
        db.close()


def main():
    password = sys.argv[1] if len(sys.argv) > 1 else "demo-password"
    if len(password) < 8:
        print("Error: Password must be at least 8 characters.")
        sys.exit(1)

    success = seed_demo(password)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
