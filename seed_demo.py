# seed_demo.py
import os

import requests

BASE_URL = os.getenv("LIBRARY_BASE_URL", "http://localhost:5000")
ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "admin")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin")

READERS = [
    {"username": "alice", "email": "alice@example.com", "password": "alice-pass"},
    {"username": "bob", "email": "bob@example.com", "password": "bob-pass"},
]

BOOKS = [
    {
        "title": "Clean Code",
        "author": "Robert C. Martin",
        "description": "A handbook of agile software craftsmanship.",
    },
    {
        "title": "The Pragmatic Programmer",
        "author": "Andrew Hunt, David Thomas",
        "description": "From journeyman to master.",
    },
    {
        "title": "The C Programming Language",
        "author": "Brian W. Kernighan, Dennis M. Ritchie",
        "description": "The classic introduction to C.",
    },
    {
        "title": "Introduction to Algorithms",
        "author": "Cormen, Leiserson, Rivest, Stein",
        "description": "Comprehensive algorithms textbook.",
    },
    {
        "title": "Designing Data-Intensive Applications",
        "author": "Martin Kleppmann",
        "description": "The big ideas behind reliable, scalable systems.",
    },
]


def check_service(url):
    """Hit /api/health and return True/False."""
    health_url = f"{url.rstrip('/')}/api/health"
    try:
        r = requests.get(health_url, timeout=3)
        print(f"[CHECK] {health_url} -> {r.status_code}")
        return r.ok
    except Exception as e:
        print(f"[ERROR] service not reachable at {health_url}: {e}")
        return False


def sign_in(session, username, password):
    resp = session.post(
        f"{BASE_URL}/api/signIn",
        json={"username": username, "password": password},
        timeout=5,
    )
    print(f"  sign in {username}: {resp.status_code}")
    return resp.ok


def register_readers():
    print("\n== Registering readers ==")
    for reader in READERS:
        try:
            resp = requests.post(f"{BASE_URL}/api/signup", json=reader, timeout=5)
            print(f"  {reader['username']}: {resp.status_code} {resp.text.strip()}")
        except Exception as e:
            print(f"  {reader['username']}: FAILED -> {e}")


def seed_books(admin):
    print("\n== Seeding books ==")
    for i, book in enumerate(BOOKS, start=1):
        try:
            resp = admin.post(f"{BASE_URL}/api/book", json=book, timeout=5)
            print(f"  [{i:02}] {book['title']} -> {resp.status_code}")
            if not resp.ok:
                print(f"      Body: {resp.text.strip()}")
        except Exception as e:
            print(f"  [{i:02}] {book['title']} -> FAILED: {e}")


def main():
    print("Checking library service...")
    if not check_service(BASE_URL):
        print("\nLibrary service is not reachable. Make sure it is running.")
        return

    admin = requests.Session()
    print("\n== Signing in as administrator ==")
    if not sign_in(admin, ADMIN_USERNAME, ADMIN_PASSWORD):
        print("Start the service with ADMIN_USERNAME/ADMIN_PASSWORD set to bootstrap an admin.")
        return

    register_readers()
    seed_books(admin)

    print("\nDone.")
    print("Try hitting:")
    print(f"  {BASE_URL}/api/book/all  (after signing in)")


if __name__ == "__main__":
    main()
