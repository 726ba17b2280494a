"""
Database initialisation and integrity check.

Creates the unique indexes the API depends on, then performs a full CRUD
cycle (Create, Read, Update, Delete) across the main collections to make
sure the connection works and the unique constraints are enforced.

Run with:
    python -m backend.database.init_db
"""

import sys

from pymongo.errors import DuplicateKeyError, PyMongoError

from backend.database.db_connection import get_db, ensure_indexes

COLLECTIONS = ["events", "users", "messages", "likedEvents", "payments", "feedbacks"]
TEST_EMAIL = "init-db-check@example.com"


def main() -> int:
    print("--- Running Database Quick Test ---")

    db = get_db()
    event_id = None
    ok = False

    try:
        # 1. Basic connection check
        info = db.client.server_info()
        print(f"Connected! MongoDB server version: {info.get('version')}")

        # 2. Indexes
        ensure_indexes(db)
        print("Indexes ensured.")

        existing = set(db.list_collection_names())
        print("\nChecking collections...")
        for name in COLLECTIONS:
            print(f" - {name}: {'Found' if name in existing else 'will be created on first write'}")

        # 3. Insert test data
        print("\nInserting test data...")
        db["users"].insert_one({"email": TEST_EMAIL, "role": "organizer"})
        event_id = db["events"].insert_one({
            "name": "Init DB Check",
            "date": "2030-01-01",
            "email": TEST_EMAIL,
            "price": 100,
            "status": "pending",
        }).inserted_id
        print(f"Data insertion complete: event_id={event_id}")

        # 4. Unique email must be rejected
        try:
            db["users"].insert_one({"email": TEST_EMAIL})
            raise RuntimeError("Duplicate user insert succeeded. Unique index on users.email is missing.")
        except DuplicateKeyError:
            print("Duplicate user correctly rejected.")

        # 5. Update and read back
        db["events"].update_one({"_id": event_id}, {"$set": {"status": "approved"}})
        event = db["events"].find_one({"_id": event_id})
        if not event or event.get("status") != "approved":
            raise RuntimeError("Failed to read back the updated event.")
        print(f"Found event: '{event['name']}' with status {event['status']}")

        ok = True
        print("\nDatabase test PASSED successfully!")

    except (PyMongoError, RuntimeError) as e:
        print("\nDatabase test FAILED:")
        print(f" Error: {e}")

    finally:
        print("\nCleaning up test data...")
        try:
            if event_id:
                db["events"].delete_one({"_id": event_id})
            db["users"].delete_many({"email": TEST_EMAIL})
            print("Cleanup complete.")
        except PyMongoError as cleanup_error:
            print(f"Cleanup FAILED. Database may contain leftover test data: {cleanup_error}")

    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
