"""SQLite backed persistence used by the lead-magnet service.

Every operation opens its own connection: nothing is cached in process,
so concurrent request handlers always observe the latest committed state.
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional

import aiosqlite

BODY_FORMATS = ("html", "text")


def utc_now_iso() -> str:
    """Return the current UTC timestamp as ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _new_id() -> str:
    return str(uuid.uuid4())


class Persistence:
    """Helper class responsible for reading and writing service state."""

    def __init__(self, db_path: str = "/data/leadmagnet.db"):
        """Persist data to the given database path."""
        self.db_path = db_path or ":memory:"

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA foreign_keys = ON")
            yield db

    async def init_db(self) -> None:
        """Create the database schema."""
        async with self._connect() as db:
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS senders (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS email_templates (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    subject TEXT NOT NULL,
                    body_format TEXT NOT NULL DEFAULT 'html',
                    html_body TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT,
                    slug TEXT NOT NULL UNIQUE,
                    file_key TEXT NOT NULL,
                    file_name TEXT NOT NULL,
                    file_type TEXT NOT NULL,
                    file_size INTEGER NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    sender_id TEXT REFERENCES senders(id) ON DELETE SET NULL,
                    email_template_id TEXT REFERENCES email_templates(id) ON DELETE SET NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS leads (
                    id TEXT PRIMARY KEY,
                    email TEXT NOT NULL,
                    source TEXT,
                    captured_at TEXT NOT NULL
                )
                """
            )
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS email_sends (
                    id TEXT PRIMARY KEY,
                    document_id TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
                    lead_id TEXT NOT NULL REFERENCES leads(id) ON DELETE CASCADE,
                    resend_email_id TEXT,
                    status TEXT NOT NULL DEFAULT 'pending',
                    sent_at TEXT NOT NULL,
                    delivered_at TEXT
                )
                """
            )
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS document_views (
                    id TEXT PRIMARY KEY,
                    document_id TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
                    viewed_at TEXT NOT NULL,
                    ip_address TEXT
                )
                """
            )
            await db.execute("CREATE INDEX IF NOT EXISTS documents_slug_idx ON documents(slug)")
            await db.execute("CREATE INDEX IF NOT EXISTS leads_email_idx ON leads(email)")
            await db.execute("CREATE INDEX IF NOT EXISTS email_sends_document_idx ON email_sends(document_id)")
            await db.execute("CREATE INDEX IF NOT EXISTS email_sends_resend_id_idx ON email_sends(resend_email_id)")
            await db.execute("CREATE INDEX IF NOT EXISTS document_views_document_idx ON document_views(document_id)")
            await db.commit()

    async def _fetch_one(self, query: str, params: tuple = ()) -> Optional[Dict[str, Any]]:
        async with self._connect() as db:
            async with db.execute(query, params) as cur:
                row = await cur.fetchone()
        return dict(row) if row else None

    async def _fetch_all(self, query: str, params: tuple = ()) -> List[Dict[str, Any]]:
        async with self._connect() as db:
            async with db.execute(query, params) as cur:
                rows = await cur.fetchall()
        return [dict(row) for row in rows]

    async def _execute(self, query: str, params: tuple = ()) -> int:
        async with self._connect() as db:
            cursor = await db.execute(query, params)
            await db.commit()
            return cursor.rowcount

    # Senders ------------------------------------------------------------------
    async def add_sender(self, name: str, email: str) -> Dict[str, Any]:
        """Store a sender identity and return the new row."""
        sender = {"id": _new_id(), "name": name, "email": email, "created_at": utc_now_iso()}
        await self._execute(
            "INSERT INTO senders (id, name, email, created_at) VALUES (?, ?, ?, ?)",
            (sender["id"], sender["name"], sender["email"], sender["created_at"]),
        )
        return sender

    async def get_sender(self, sender_id: str) -> Optional[Dict[str, Any]]:
        return await self._fetch_one("SELECT * FROM senders WHERE id=?", (sender_id,))

    async def list_senders(self) -> List[Dict[str, Any]]:
        return await self._fetch_all("SELECT * FROM senders ORDER BY created_at DESC")

    async def delete_sender(self, sender_id: str) -> bool:
        """Remove a sender; documents referencing it fall back to the default identity."""
        async with self._connect() as db:
            await db.execute("UPDATE documents SET sender_id=NULL WHERE sender_id=?", (sender_id,))
            cursor = await db.execute("DELETE FROM senders WHERE id=?", (sender_id,))
            await db.commit()
            return cursor.rowcount > 0

    # Email templates ----------------------------------------------------------
    async def add_template(
        self, name: str, subject: str, html_body: str, body_format: str = "html"
    ) -> Dict[str, Any]:
        """Store an email template and return the new row."""
        if body_format not in BODY_FORMATS:
            raise ValueError(f"Unsupported body format '{body_format}'")
        now = utc_now_iso()
        template = {
            "id": _new_id(),
            "name": name,
            "subject": subject,
            "body_format": body_format,
            "html_body": html_body,
            "created_at": now,
            "updated_at": now,
        }
        await self._execute(
            """
            INSERT INTO email_templates (id, name, subject, body_format, html_body, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                template["id"],
                name,
                subject,
                body_format,
                html_body,
                now,
                now,
            ),
        )
        return template

    async def get_template(self, template_id: str) -> Optional[Dict[str, Any]]:
        return await self._fetch_one("SELECT * FROM email_templates WHERE id=?", (template_id,))

    async def list_templates(self) -> List[Dict[str, Any]]:
        return await self._fetch_all("SELECT * FROM email_templates ORDER BY updated_at DESC")

    async def update_template(
        self, template_id: str, name: str, subject: str, html_body: str, body_format: str = "html"
    ) -> bool:
        """Overwrite a template, bumping ``updated_at``."""
        if body_format not in BODY_FORMATS:
            raise ValueError(f"Unsupported body format '{body_format}'")
        changed = await self._execute(
            """
            UPDATE email_templates
            SET name=?, subject=?, html_body=?, body_format=?, updated_at=?
            WHERE id=?
            """,
            (name, subject, html_body, body_format, utc_now_iso(), template_id),
        )
        return changed > 0

    async def delete_template(self, template_id: str) -> bool:
        """Remove a template; documents referencing it fall back to the built-in template."""
        async with self._connect() as db:
            await db.execute(
                "UPDATE documents SET email_template_id=NULL WHERE email_template_id=?", (template_id,)
            )
            cursor = await db.execute("DELETE FROM email_templates WHERE id=?", (template_id,))
            await db.commit()
            return cursor.rowcount > 0

    # Documents ----------------------------------------------------------------
    @staticmethod
    def _decode_document(row: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if row is not None:
            row["is_active"] = bool(row["is_active"])
        return row

    async def add_document(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a document row. Raises :class:`aiosqlite.IntegrityError` on duplicate slug."""
        record = {
            "id": doc.get("id") or _new_id(),
            "title": doc["title"],
            "description": doc.get("description") or None,
            "slug": doc["slug"],
            "file_key": doc["file_key"],
            "file_name": doc["file_name"],
            "file_type": doc["file_type"],
            "file_size": int(doc["file_size"]),
            "is_active": bool(doc.get("is_active", True)),
            "sender_id": doc.get("sender_id"),
            "email_template_id": doc.get("email_template_id"),
            "created_at": utc_now_iso(),
        }
        await self._execute(
            """
            INSERT INTO documents
            (id, title, description, slug, file_key, file_name, file_type, file_size,
             is_active, sender_id, email_template_id, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record["id"],
                record["title"],
                record["description"],
                record["slug"],
                record["file_key"],
                record["file_name"],
                record["file_type"],
                record["file_size"],
                1 if record["is_active"] else 0,
                record["sender_id"],
                record["email_template_id"],
                record["created_at"],
            ),
        )
        return record

    async def get_document(self, document_id: str) -> Optional[Dict[str, Any]]:
        row = await self._fetch_one("SELECT * FROM documents WHERE id=?", (document_id,))
        return self._decode_document(row)

    async def get_document_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        row = await self._fetch_one("SELECT * FROM documents WHERE slug=? LIMIT 1", (slug,))
        return self._decode_document(row)

    async def list_documents(self) -> List[Dict[str, Any]]:
        rows = await self._fetch_all("SELECT * FROM documents ORDER BY created_at DESC")
        return [self._decode_document(row) for row in rows]

    async def set_document_active(self, document_id: str, is_active: bool) -> bool:
        changed = await self._execute(
            "UPDATE documents SET is_active=? WHERE id=?", (1 if is_active else 0, document_id)
        )
        return changed > 0

    async def assign_document_email(
        self, document_id: str, sender_id: Optional[str], email_template_id: Optional[str]
    ) -> bool:
        """Point a document at a sender and a template (``None`` restores the defaults)."""
        changed = await self._execute(
            "UPDATE documents SET sender_id=?, email_template_id=? WHERE id=?",
            (sender_id, email_template_id, document_id),
        )
        return changed > 0

    async def delete_document(self, document_id: str) -> Optional[Dict[str, Any]]:
        """Delete a document and return the removed row, cascading to sends and views."""
        doc = await self.get_document(document_id)
        if doc is None:
            return None
        async with self._connect() as db:
            await db.execute("DELETE FROM email_sends WHERE document_id=?", (document_id,))
            await db.execute("DELETE FROM document_views WHERE document_id=?", (document_id,))
            await db.execute("DELETE FROM documents WHERE id=?", (document_id,))
            await db.commit()
        return doc

    # Leads --------------------------------------------------------------------
    async def add_lead(self, email: str, source: Optional[str]) -> Dict[str, Any]:
        """Record a captured address. Repeated submissions create new rows."""
        lead = {"id": _new_id(), "email": email, "source": source, "captured_at": utc_now_iso()}
        await self._execute(
            "INSERT INTO leads (id, email, source, captured_at) VALUES (?, ?, ?, ?)",
            (lead["id"], lead["email"], lead["source"], lead["captured_at"]),
        )
        return lead

    async def list_leads(self, unique: bool = False) -> List[Dict[str, Any]]:
        """Return captured leads, oldest first.

        With ``unique`` only the first capture of each address is kept.
        """
        rows = await self._fetch_all("SELECT * FROM leads ORDER BY captured_at ASC, rowid ASC")
        if not unique:
            return rows
        seen: set[str] = set()
        result: List[Dict[str, Any]] = []
        for row in rows:
            if row["email"] in seen:
                continue
            seen.add(row["email"])
            result.append(row)
        return result

    async def count_leads(self, email: Optional[str] = None) -> int:
        if email is None:
            row = await self._fetch_one("SELECT COUNT(*) AS n FROM leads")
        else:
            row = await self._fetch_one("SELECT COUNT(*) AS n FROM leads WHERE email=?", (email,))
        return int(row["n"]) if row else 0

    # Email sends --------------------------------------------------------------
    async def add_email_send(
        self,
        document_id: str,
        lead_id: str,
        resend_email_id: Optional[str],
        status: str = "sent",
    ) -> Dict[str, Any]:
        """Record one accepted delivery attempt."""
        send = {
            "id": _new_id(),
            "document_id": document_id,
            "lead_id": lead_id,
            "resend_email_id": resend_email_id,
            "status": status,
            "sent_at": utc_now_iso(),
            "delivered_at": None,
        }
        await self._execute(
            """
            INSERT INTO email_sends (id, document_id, lead_id, resend_email_id, status, sent_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (send["id"], document_id, lead_id, resend_email_id, status, send["sent_at"]),
        )
        return send

    async def get_email_send(self, resend_email_id: str) -> Optional[Dict[str, Any]]:
        return await self._fetch_one(
            "SELECT * FROM email_sends WHERE resend_email_id=? LIMIT 1", (resend_email_id,)
        )

    async def list_email_sends(self, document_id: Optional[str] = None) -> List[Dict[str, Any]]:
        if document_id is None:
            return await self._fetch_all("SELECT * FROM email_sends ORDER BY sent_at DESC")
        return await self._fetch_all(
            "SELECT * FROM email_sends WHERE document_id=? ORDER BY sent_at DESC", (document_id,)
        )

    async def count_email_sends(self) -> int:
        row = await self._fetch_one("SELECT COUNT(*) AS n FROM email_sends")
        return int(row["n"]) if row else 0

    async def update_send_status(
        self, resend_email_id: str, status: str, delivered_at: Optional[str] = None
    ) -> int:
        """Set the status of every send carrying the provider id.

        ``delivered_at`` is written only when given. Returns the number of
        rows touched; zero is a valid outcome.
        """
        if delivered_at is not None:
            return await self._execute(
                "UPDATE email_sends SET status=?, delivered_at=? WHERE resend_email_id=?",
                (status, delivered_at, resend_email_id),
            )
        return await self._execute(
            "UPDATE email_sends SET status=? WHERE resend_email_id=?",
            (status, resend_email_id),
        )

    async def mark_delivered_unless_delivered(self, resend_email_id: str, delivered_at: str) -> int:
        """Upgrade a send to ``delivered`` unless it already is."""
        return await self._execute(
            """
            UPDATE email_sends SET status='delivered', delivered_at=?
            WHERE resend_email_id=? AND status != 'delivered'
            """,
            (delivered_at, resend_email_id),
        )

    # Document views -----------------------------------------------------------
    async def add_document_view(self, document_id: str, ip_address: Optional[str]) -> None:
        await self._execute(
            "INSERT INTO document_views (id, document_id, viewed_at, ip_address) VALUES (?, ?, ?, ?)",
            (_new_id(), document_id, utc_now_iso(), ip_address),
        )

    async def count_document_views(self, document_id: str) -> int:
        row = await self._fetch_one(
            "SELECT COUNT(*) AS n FROM document_views WHERE document_id=?", (document_id,)
        )
        return int(row["n"]) if row else 0
