"""
Create a company (tenant) and print a session token for it.

Usage:
    python scripts/create_company.py "Acme Co" [--short-name acme] [--ttl 86400]
    python scripts/create_company.py --token-for 3
"""
import sys
import os
import argparse

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Load environment variables before settings are read
from dotenv import load_dotenv
load_dotenv()

from clocksync.auth.security import create_access_token
from clocksync.db import Base, SessionLocal, engine
from clocksync.models.models import Company


def main():
    parser = argparse.ArgumentParser(description="Create a company and mint a session token")
    parser.add_argument("name", nargs="?", help="Company name")
    parser.add_argument("--short-name", default=None)
    parser.add_argument("--token-for", type=int, default=None, help="Only mint a token for an existing company id")
    parser.add_argument("--ttl", type=int, default=None, help="Token lifetime in seconds")
    args = parser.parse_args()

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        if args.token_for is not None:
            company = db.get(Company, args.token_for)
            if company is None:
                raise SystemExit(f"Company {args.token_for} not found")
        else:
            if not args.name:
                parser.error("name is required unless --token-for is given")
            company = Company(name=args.name, short_name=args.short_name)
            db.add(company)
            db.commit()
            db.refresh(company)
            print(f"✅ Created company {company.id}: {company.name}")
        print(create_access_token(company.id, args.ttl))
    finally:
        db.close()


if __name__ == "__main__":
    main()
