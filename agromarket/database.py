"""
Database operations and connection management.

Each collection of the marketplace (users, listings, messages, discussion
posts) lives in its own SQLite table. Every operation opens a short-lived
connection, so a ``Database`` instance is safe to share between requests.
"""
import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from .listing_query import ListingQuery, build_where_clause, get_order_clause
from .utils import new_id, now_iso

logger = logging.getLogger(__name__)

# Schema definitions
DDL_USERS = """
CREATE TABLE IF NOT EXISTS users (
  id TEXT PRIMARY KEY,
  name TEXT NOT NULL,
  email TEXT NOT NULL UNIQUE,
  password_hash TEXT NOT NULL,
  phone TEXT,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL
);
"""

DDL_LISTINGS = """
CREATE TABLE IF NOT EXISTS listings (
  id TEXT PRIMARY KEY,
  title TEXT NOT NULL,
  description TEXT NOT NULL,
  price REAL NOT NULL,
  category TEXT NOT NULL,
  condition TEXT NOT NULL,
  location TEXT NOT NULL,
  images TEXT NOT NULL DEFAULT '[]',
  is_negotiable INTEGER NOT NULL DEFAULT 0,
  seller_id TEXT NOT NULL,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL
);
"""

DDL_MESSAGES = """
CREATE TABLE IF NOT EXISTS messages (
  id TEXT PRIMARY KEY,
  sender_id TEXT NOT NULL,
  recipient_id TEXT NOT NULL,
  listing_id TEXT NOT NULL,
  content TEXT NOT NULL,
  created_at TEXT NOT NULL
);
"""

DDL_DISCUSSION_POSTS = """
CREATE TABLE IF NOT EXISTS discussion_posts (
  id TEXT PRIMARY KEY,
  title TEXT NOT NULL,
  content TEXT NOT NULL,
  image_url TEXT,
  author_id TEXT NOT NULL,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL
);
"""

DDL_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_listings_created_at ON listings(created_at);",
    "CREATE INDEX IF NOT EXISTS idx_listings_seller ON listings(seller_id);",
    "CREATE INDEX IF NOT EXISTS idx_listings_category ON listings(category);",
    "CREATE INDEX IF NOT EXISTS idx_messages_listing ON messages(listing_id);",
    "CREATE INDEX IF NOT EXISTS idx_discussion_posts_created_at ON discussion_posts(created_at);",
]

LISTING_SELECT = """
SELECT l.*, u.id AS seller_ref, u.name AS seller_name,
       u.email AS seller_email, u.phone AS seller_phone
FROM listings l LEFT JOIN users u ON u.id = l.seller_id
"""

MESSAGE_SELECT = """
SELECT m.*, s.name AS sender_name, s.email AS sender_email,
       r.name AS recipient_name, r.email AS recipient_email
FROM messages m
LEFT JOIN users s ON s.id = m.sender_id
LEFT JOIN users r ON r.id = m.recipient_id
"""

POST_SELECT = """
SELECT p.*, a.id AS author_ref, a.name AS author_name, a.email AS author_email
FROM discussion_posts p LEFT JOIN users a ON a.id = p.author_id
"""


def _fold(value: Optional[str]) -> Optional[str]:
    return value.casefold() if value is not None else None


def user_projection(row: Dict[str, Any]) -> Dict[str, Any]:
    """Public view of a user record; drops the credential hash."""
    return {
        "id": row["id"],
        "name": row["name"],
        "email": row["email"],
        "phone": row.get("phone"),
    }


def _listing_from_row(row: sqlite3.Row) -> Dict[str, Any]:
    data = dict(row)
    data["images"] = json.loads(data.get("images") or "[]")
    data["is_negotiable"] = bool(data.get("is_negotiable"))
    seller_ref = data.pop("seller_ref", None)
    name = data.pop("seller_name", None)
    email = data.pop("seller_email", None)
    phone = data.pop("seller_phone", None)
    data["seller"] = (
        {"id": seller_ref, "name": name, "email": email, "phone": phone}
        if seller_ref else None
    )
    return data


def _message_from_row(row: sqlite3.Row) -> Dict[str, Any]:
    data = dict(row)
    sender = {"id": data["sender_id"], "name": data.pop("sender_name"), "email": data.pop("sender_email")}
    recipient = {"id": data["recipient_id"], "name": data.pop("recipient_name"), "email": data.pop("recipient_email")}
    data["sender"] = sender if sender["name"] is not None else None
    data["recipient"] = recipient if recipient["name"] is not None else None
    data["listing"] = data["listing_id"]
    return data


def _post_from_row(row: sqlite3.Row) -> Dict[str, Any]:
    data = dict(row)
    author_ref = data.pop("author_ref", None)
    name = data.pop("author_name", None)
    email = data.pop("author_email", None)
    data["author"] = {"id": author_ref, "name": name, "email": email} if author_ref else None
    return data


class Database:
    """SQLite-backed document store for the marketplace."""

    def __init__(self, path: str):
        self.path = path

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection with proper error handling."""
        conn = None
        try:
            if not self.path:
                raise ValueError("Database path not configured")

            conn = sqlite3.connect(self.path)
            conn.row_factory = sqlite3.Row  # Enable dict-like access
            conn.create_function("fold", 1, _fold, deterministic=True)
            yield conn
            conn.commit()
        except sqlite3.IntegrityError:
            # Constraint violations are expected and handled by callers
            raise
        except sqlite3.Error as e:
            logger.error(f"Database error: {e}")
            raise
        finally:
            if conn is not None:
                conn.close()

    def init_db(self) -> None:
        """Initialize database schema with tables and indexes."""
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        with self.connection() as conn:
            conn.execute("PRAGMA journal_mode=WAL;")
            for ddl in (DDL_USERS, DDL_LISTINGS, DDL_MESSAGES, DDL_DISCUSSION_POSTS):
                conn.execute(ddl)
            for ddl in DDL_INDEXES:
                conn.execute(ddl)
        logger.info(f"Database ready at {self.path}")

    def ping(self) -> None:
        with self.connection() as conn:
            conn.execute("SELECT 1").fetchone()

    # Users

    def create_user(self, name: str, email: str, password_hash: str,
                    phone: Optional[str] = None) -> Dict[str, Any]:
        """Insert a user; raises sqlite3.IntegrityError on a duplicate email."""
        user_id = new_id()
        ts = now_iso()
        with self.connection() as conn:
            conn.execute(
                "INSERT INTO users (id, name, email, password_hash, phone, created_at, updated_at)"
                " VALUES (?,?,?,?,?,?,?)",
                (user_id, name, email, password_hash, phone, ts, ts),
            )
        return {
            "id": user_id, "name": name, "email": email, "password_hash": password_hash,
            "phone": phone, "created_at": ts, "updated_at": ts,
        }

    def get_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        with self.connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
        return dict(row) if row else None

    def get_user_by_id(self, user_id: str) -> Optional[Dict[str, Any]]:
        with self.connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return dict(row) if row else None

    def count_users(self) -> int:
        with self.connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]

    # Listings

    def get_listings(self, query: ListingQuery) -> List[Dict[str, Any]]:
        """Get listings with filters, sorting and an optional cap."""
        where_clause, parameters = build_where_clause(query)
        sql = f"{LISTING_SELECT} {where_clause} {get_order_clause(query.sort_by)}"
        if query.limit is not None:
            sql += " LIMIT ?"
            parameters.append(query.limit)
        with self.connection() as conn:
            rows = conn.execute(sql, parameters).fetchall()
        return [_listing_from_row(row) for row in rows]

    def get_listing(self, listing_id: str) -> Optional[Dict[str, Any]]:
        """Get a single listing, with its seller resolved, by id."""
        with self.connection() as conn:
            row = conn.execute(f"{LISTING_SELECT} WHERE l.id = ?", (listing_id,)).fetchone()
        return _listing_from_row(row) if row else None

    def insert_listing(self, fields: Dict[str, Any], images: List[str], seller_id: str) -> str:
        listing_id = new_id()
        ts = now_iso()
        with self.connection() as conn:
            conn.execute(
                """
                INSERT INTO listings (
                  id, title, description, price, category, condition, location,
                  images, is_negotiable, seller_id, created_at, updated_at
                ) VALUES (?,?,?,?,?,?,?,?,?,?,?,?)
                """,
                (
                    listing_id, fields["title"], fields["description"], fields["price"],
                    fields["category"], fields["condition"], fields["location"],
                    json.dumps(images), int(bool(fields["is_negotiable"])), seller_id, ts, ts,
                ),
            )
        return listing_id

    def update_listing(self, listing_id: str, fields: Dict[str, Any], images: List[str]) -> None:
        with self.connection() as conn:
            conn.execute(
                """
                UPDATE listings SET
                  title=?, description=?, price=?, category=?, condition=?, location=?,
                  images=?, is_negotiable=?, updated_at=?
                WHERE id=?
                """,
                (
                    fields["title"], fields["description"], fields["price"], fields["category"],
                    fields["condition"], fields["location"], json.dumps(images),
                    int(bool(fields["is_negotiable"])), now_iso(), listing_id,
                ),
            )

    def delete_listing(self, listing_id: str) -> None:
        with self.connection() as conn:
            conn.execute("DELETE FROM listings WHERE id = ?", (listing_id,))

    # Messages

    def insert_message(self, sender_id: str, recipient_id: str, listing_id: str, content: str) -> str:
        message_id = new_id()
        with self.connection() as conn:
            conn.execute(
                "INSERT INTO messages (id, sender_id, recipient_id, listing_id, content, created_at)"
                " VALUES (?,?,?,?,?,?)",
                (message_id, sender_id, recipient_id, listing_id, content, now_iso()),
            )
        return message_id

    def get_message(self, message_id: str) -> Optional[Dict[str, Any]]:
        with self.connection() as conn:
            row = conn.execute(f"{MESSAGE_SELECT} WHERE m.id = ?", (message_id,)).fetchone()
        return _message_from_row(row) if row else None

    def count_messages(self, listing_id: Optional[str] = None) -> int:
        with self.connection() as conn:
            if listing_id is None:
                return conn.execute("SELECT COUNT(*) FROM messages").fetchone()[0]
            return conn.execute(
                "SELECT COUNT(*) FROM messages WHERE listing_id = ?", (listing_id,)
            ).fetchone()[0]

    # Discussion posts

    def insert_post(self, title: str, content: str, image_url: Optional[str], author_id: str) -> str:
        post_id = new_id()
        ts = now_iso()
        with self.connection() as conn:
            conn.execute(
                "INSERT INTO discussion_posts (id, title, content, image_url, author_id, created_at, updated_at)"
                " VALUES (?,?,?,?,?,?,?)",
                (post_id, title, content, image_url, author_id, ts, ts),
            )
        return post_id

    def get_post(self, post_id: str) -> Optional[Dict[str, Any]]:
        with self.connection() as conn:
            row = conn.execute(f"{POST_SELECT} WHERE p.id = ?", (post_id,)).fetchone()
        return _post_from_row(row) if row else None

    def get_posts(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Newest posts first, optionally capped."""
        sql = f"{POST_SELECT} ORDER BY p.created_at DESC, p.rowid DESC"
        parameters: List[Any] = []
        if limit is not None:
            sql += " LIMIT ?"
            parameters.append(limit)
        with self.connection() as conn:
            rows = conn.execute(sql, parameters).fetchall()
        return [_post_from_row(row) for row in rows]

    def update_post(self, post_id: str, fields: Dict[str, Any]) -> None:
        """Update the given post columns (title, content, image_url)."""
        allowed = [key for key in ("title", "content", "image_url") if key in fields]
        assignments = ", ".join(f"{key}=?" for key in allowed)
        parameters = [fields[key] for key in allowed]
        with self.connection() as conn:
            conn.execute(
                f"UPDATE discussion_posts SET {assignments}{', ' if assignments else ''}updated_at=? WHERE id=?",
                parameters + [now_iso(), post_id],
            )

    def delete_post(self, post_id: str) -> None:
        with self.connection() as conn:
            conn.execute("DELETE FROM discussion_posts WHERE id = ?", (post_id,))

    def count_posts(self) -> int:
        with self.connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM discussion_posts").fetchone()[0]
