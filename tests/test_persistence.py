import aiosqlite
import pytest

from leadmagnet_service.persistence import Persistence


def _doc(slug="guide-ab12", **extra):
    return {
        "title": "The Guide",
        "slug": slug,
        "file_key": f"documents/{slug}.pdf",
        "file_name": "guide.pdf",
        "file_type": "application/pdf",
        "file_size": 10,
        **extra,
    }


@pytest.mark.asyncio
async def test_init_db_is_idempotent(tmp_path):
    p = Persistence(str(tmp_path / "test.db"))
    await p.init_db()
    await p.init_db()
    assert await p.list_documents() == []


@pytest.mark.asyncio
async def test_document_crud_and_unique_slug(tmp_path):
    p = Persistence(str(tmp_path / "test.db"))
    await p.init_db()

    doc = await p.add_document(_doc())
    assert doc["is_active"] is True
    stored = await p.get_document_by_slug("guide-ab12")
    assert stored["id"] == doc["id"]
    assert stored["is_active"] is True
    assert stored["description"] is None

    with pytest.raises(aiosqlite.IntegrityError):
        await p.add_document(_doc())

    assert await p.set_document_active(doc["id"], False) is True
    assert (await p.get_document(doc["id"]))["is_active"] is False
    assert await p.set_document_active("missing", True) is False


@pytest.mark.asyncio
async def test_deleting_sender_and_template_clears_document_references(tmp_path):
    p = Persistence(str(tmp_path / "test.db"))
    await p.init_db()
    sender = await p.add_sender("Ada", "ada@example.com")
    template = await p.add_template("welcome", "Hi", "<p>Hi</p>")
    doc = await p.add_document(_doc(sender_id=sender["id"], email_template_id=template["id"]))

    assert await p.delete_sender(sender["id"]) is True
    assert await p.delete_template(template["id"]) is True
    stored = await p.get_document(doc["id"])
    assert stored["sender_id"] is None
    assert stored["email_template_id"] is None
    assert await p.delete_sender(sender["id"]) is False


@pytest.mark.asyncio
async def test_template_format_validation_and_update(tmp_path):
    p = Persistence(str(tmp_path / "test.db"))
    await p.init_db()

    with pytest.raises(ValueError):
        await p.add_template("bad", "S", "B", body_format="markdown")

    template = await p.add_template("t", "S", "B", body_format="text")
    assert template["body_format"] == "text"
    assert await p.update_template(template["id"], "t2", "S2", "B2", "html") is True
    updated = await p.get_template(template["id"])
    assert (updated["name"], updated["subject"], updated["html_body"], updated["body_format"]) == (
        "t2",
        "S2",
        "B2",
        "html",
    )
    assert await p.update_template("missing", "n", "s", "b", "html") is False


@pytest.mark.asyncio
async def test_leads_keep_duplicates_and_unique_view_keeps_first(tmp_path):
    p = Persistence(str(tmp_path / "test.db"))
    await p.init_db()
    first = await p.add_lead("a@x.com", "guide")
    await p.add_lead("b@x.com", "guide")
    await p.add_lead("a@x.com", "other")

    assert await p.count_leads() == 3
    assert await p.count_leads("a@x.com") == 2
    unique = await p.list_leads(unique=True)
    assert [lead["email"] for lead in unique] == ["a@x.com", "b@x.com"]
    assert unique[0]["id"] == first["id"]


@pytest.mark.asyncio
async def test_send_status_updates(tmp_path):
    p = Persistence(str(tmp_path / "test.db"))
    await p.init_db()
    doc = await p.add_document(_doc())
    lead = await p.add_lead("a@x.com", "guide-ab12")
    await p.add_email_send(doc["id"], lead["id"], "msg_1")

    send = await p.get_email_send("msg_1")
    assert send["status"] == "sent"
    assert send["delivered_at"] is None

    assert await p.update_send_status("msg_1", "bounced") == 1
    assert await p.update_send_status("unknown", "bounced") == 0

    assert await p.mark_delivered_unless_delivered("msg_1", "2024-01-01T00:00:00Z") == 1
    assert await p.mark_delivered_unless_delivered("msg_1", "2024-02-01T00:00:00Z") == 0
    send = await p.get_email_send("msg_1")
    assert send["status"] == "delivered"
    assert send["delivered_at"] == "2024-01-01T00:00:00Z"


@pytest.mark.asyncio
async def test_delete_document_removes_sends_and_views(tmp_path):
    p = Persistence(str(tmp_path / "test.db"))
    await p.init_db()
    doc = await p.add_document(_doc())
    lead = await p.add_lead("a@x.com", "guide-ab12")
    await p.add_email_send(doc["id"], lead["id"], "msg_1")
    await p.add_document_view(doc["id"], "1.2.3.4")
    assert await p.count_document_views(doc["id"]) == 1
    assert [s["resend_email_id"] for s in await p.list_email_sends(doc["id"])] == ["msg_1"]
    assert await p.list_email_sends("other-document") == []

    removed = await p.delete_document(doc["id"])
    assert removed["file_key"] == "documents/guide-ab12.pdf"
    assert await p.count_email_sends() == 0
    assert await p.count_document_views(doc["id"]) == 0
    assert await p.count_leads() == 1
    assert await p.delete_document(doc["id"]) is None
