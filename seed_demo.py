# seed_demo.py
import os

import requests

BASE_URL = os.getenv("LIBRARY_BASE_URL", "http://localhost:5000")
ADMIN_USERNAME = os.getenv("LIBRARY_ADMIN_USERNAME", "admin")
ADMIN_PASSWORD = os.getenv("LIBRARY_ADMIN_PASSWORD", "admin-password")

BOOKS = [
    {
        "isbn": "978-0132350884",
        "title": "Clean Code",
        "author": "Robert C. Martin",
        "publisher": "Prentice Hall",
        "category": "Programming",
    },
    {
        "isbn": "978-0201616224",
        "title": "The Pragmatic Programmer",
        "author": "Andrew Hunt, David Thomas",
        "publisher": "Addison-Wesley",
        "category": "Programming",
    },
    {
        "isbn": "978-0131103627",
        "title": "The C Programming Language",
        "author": "Brian W. Kernighan, Dennis M. Ritchie",
        "publisher": "Prentice Hall",
        "category": "Programming",
    },
    {
        "isbn": "978-0262033848",
        "title": "Introduction to Algorithms",
        "author": "Cormen, Leiserson, Rivest, Stein",
        "publisher": "MIT Press",
        "category": "Computer Science",
    },
    {
        "isbn": "978-1491950357",
        "title": "Designing Data-Intensive Applications",
        "author": "Martin Kleppmann",
        "publisher": "O'Reilly Media",
        "category": "Computer Science",
    },
]

MEMBERS = [
    {"name": "Alice Example", "email": "alice@example.com", "phone": "555-0101"},
    {"name": "Bob Example", "email": "bob@example.com", "phone": "555-0102"},
    {"name": "Carol Example", "email": "carol@example.com", "max_loan_count": 2},
]


def check_service(url):
    """Hit /api/health and return True/False."""
    health_url = f"{url.rstrip('/')}/api/health"
    try:
        r = requests.get(health_url, timeout=3)
        print(f"[CHECK] {health_url} -> {r.status_code}")
        return r.ok
    except requests.RequestException as e:
        print(f"[ERROR] service not reachable at {health_url}: {e}")
        return False


def login(url, username, password):
    resp = requests.post(
        f"{url.rstrip('/')}/api/auth/login",
        json={"username": username, "password": password},
        timeout=5,
    )
    if not resp.ok:
        print(f"[ERROR] login as {username} failed: {resp.status_code} {resp.text.strip()}")
        return None
    return resp.json()["access_token"]


def seed_books(url, token):
    print("\n== Seeding books ==")
    created = 0
    for i, book in enumerate(BOOKS, start=1):
        payload = dict(book)
        # vary copies per title to make availability more interesting
        payload["total_copies"] = 2 + (i % 4)  # 2–5 copies

        try:
            resp = requests.post(
                f"{url.rstrip('/')}/api/books",
                headers={"Authorization": f"Bearer {token}"},
                json=payload,
                timeout=5,
            )
            print(f"  [{i:02}] {book['title']} -> {resp.status_code}")
            if resp.ok:
                created += 1
            else:
                print(f"      Body: {resp.text.strip()}")
        except requests.RequestException as e:
            print(f"  [{i:02}] {book['title']} -> FAILED: {e}")
    return created


def seed_members(url, token):
    print("\n== Seeding members ==")
    created = 0
    for i, member in enumerate(MEMBERS, start=1):
        try:
            resp = requests.post(
                f"{url.rstrip('/')}/api/members",
                headers={"Authorization": f"Bearer {token}"},
                json=member,
                timeout=5,
            )
            print(f"  [{i:02}] {member['email']} -> {resp.status_code}")
            if resp.ok:
                created += 1
            else:
                print(f"      Body: {resp.text.strip()}")
        except requests.RequestException as e:
            print(f"  [{i:02}] {member['email']} -> FAILED: {e}")
    return created


def main():
    print("Checking library service...")
    if not check_service(BASE_URL):
        print(f"\nLibrary service is not reachable at {BASE_URL}.")
        return

    token = login(BASE_URL, ADMIN_USERNAME, ADMIN_PASSWORD)
    if not token:
        print("\nCreate an admin first: flask --app library_service.app create-admin ...")
        return

    seed_books(BASE_URL, token)
    seed_members(BASE_URL, token)

    print("\nDone.")
    print("Try hitting:")
    print(f"  {BASE_URL}/api/books")


if __name__ == "__main__":
    main()
