#!/usr/bin/env python3
"""
Bootstrap Superadmin Script for DocVerify

Creates the first superadmin account so that further admins can be managed
through the API. Does nothing if a superadmin already exists.

Usage:
    SUPERADMIN_EMAIL=root@example.com SUPERADMIN_PASSWORD=... python seed_superadmin.py
    python seed_superadmin.py --email root@example.com --password ... --name "Root Admin"
"""

import os
import sys
import argparse
import logging

from config_manager import get_config
from database.admin_service import AdminService
from database.connection import init_db, close_db
from errors import ValidationError

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create the bootstrap superadmin for DocVerify")
    parser.add_argument("--email", default=os.getenv("SUPERADMIN_EMAIL"), help="Superadmin email (env SUPERADMIN_EMAIL)")
    parser.add_argument("--password", default=os.getenv("SUPERADMIN_PASSWORD"), help="Superadmin password (env SUPERADMIN_PASSWORD)")
    parser.add_argument("--name", default=os.getenv("SUPERADMIN_NAME", "Super Admin"), help="Display name (env SUPERADMIN_NAME)")
    parser.add_argument("--phone", default=os.getenv("SUPERADMIN_PHONE"), help="Phone number (env SUPERADMIN_PHONE)")
    parser.add_argument("--config", default=os.getenv("CONFIG_PATH"), help="Path to config.yaml")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if not args.email or not args.password:
        logger.error("Superadmin email and password are required (--email/--password or SUPERADMIN_EMAIL/SUPERADMIN_PASSWORD)")
        return 2

    config = get_config(args.config)
    db = init_db(create_tables=True)
    try:
        with db.session_scope() as session:
            service = AdminService(session, config)
            admin, created = service.ensure_superadmin(
                email=args.email,
                password=args.password,
                name=args.name,
                phone=args.phone,
            )
            if created:
                logger.info("Superadmin created: %s", admin.email)
            else:
                logger.info("Superadmin already exists: %s (nothing to do)", admin.email)
        return 0
    except ValidationError as e:
        logger.error("Invalid superadmin details: %s", e.message)
        return 1
    finally:
        close_db()


if __name__ == "__main__":
    sys.exit(main())
