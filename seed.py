"""
Seed the database with the sample catalog and an admin account.

    python seed.py                       # replace products and admin
    python seed.py --products other.json # import products from another file
    python seed.py --password NEWPASS    # only change the admin password
"""

import argparse
import json
import sys

import structlog

import database
from logging_config import configure_logging
from main import hash_password
from schemas import Product
from settings import get_settings

logger = structlog.get_logger(__name__)


def load_products(path: str):
    with open(path, encoding="utf-8") as fh:
        data = json.load(fh)
    raw = data["products"] if isinstance(data, dict) else data
    return [Product.model_validate(p) for p in raw]


def seed_products(db, products) -> int:
    db["product"].delete_many({})
    for product in products:
        doc = product.model_dump(exclude={"id", "created_at", "updated_at"}, mode="json")
        doc["has_variants"] = bool(doc.get("variants"))
        database.create_document("product", doc)
    return len(products)


def seed_admin(db, username: str, password: str) -> None:
    db["admin"].delete_many({})
    db["session"].delete_many({})
    database.create_document("admin", {"username": username, "password_hash": hash_password(password)})


def change_password(db, password: str) -> bool:
    res = db["admin"].update_one({}, {"$set": {"password_hash": hash_password(password)}})
    db["session"].delete_many({})
    return res.matched_count > 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--products", default="data/products.json")
    parser.add_argument("--password", help="change the admin password and exit")
    args = parser.parse_args(argv)

    configure_logging()
    db = database.db
    if db is None:
        logger.error("DATABASE_URL is not set")
        return 1

    if args.password:
        if not change_password(db, args.password):
            logger.error("Admin user not found, run seed first")
            return 1
        logger.info("Admin password updated")
        return 0

    settings = get_settings()
    count = seed_products(db, load_products(args.products))
    seed_admin(db, settings.admin_username, settings.admin_password)
    logger.info("Database seeded", products=count, admin=settings.admin_username)
    return 0


if __name__ == "__main__":
    sys.exit(main())
