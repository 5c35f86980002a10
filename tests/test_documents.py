import re

import pytest

from leadmagnet_service.errors import DocumentError
from leadmagnet_service.documents import generate_slug


def test_generate_slug_format():
    slug = generate_slug("  The Ultimate Guide: 2024 Edition! ")
    assert re.fullmatch(r"the-ultimate-guide-2024-edition-[0-9a-f]{8}", slug)
    assert generate_slug("Same") != generate_slug("Same")


@pytest.mark.asyncio
async def test_upload_stores_blob_and_registers_active_document(core, storage):
    doc = await core.documents.upload_document("My Guide", "guide.pdf", b"pdf-bytes", description="Read me")

    assert doc["is_active"] is True
    assert doc["file_key"] == f"documents/{doc['slug']}.pdf"
    assert doc["file_type"] == "application/pdf"
    assert doc["file_size"] == len(b"pdf-bytes")
    assert storage.blobs[doc["file_key"]] == b"pdf-bytes"
    assert (await core.persistence.get_document_by_slug(doc["slug"]))["description"] == "Read me"


@pytest.mark.asyncio
async def test_upload_without_extension_uses_bin(core):
    doc = await core.documents.upload_document("Raw", "README", b"data")
    assert doc["file_key"].endswith(".bin")
    assert doc["file_type"] == "application/octet-stream"


@pytest.mark.asyncio
async def test_upload_rejects_missing_fields_and_large_files(make_core, storage):
    svc = make_core(max_file_size_mb=1)
    await svc.init()

    with pytest.raises(DocumentError, match="Title and file are required"):
        await svc.documents.upload_document("", "a.pdf", b"x")
    with pytest.raises(DocumentError, match="Title and file are required"):
        await svc.documents.upload_document("T", "a.pdf", b"")
    with pytest.raises(DocumentError, match="File size exceeds 1MB limit"):
        await svc.documents.upload_document("T", "a.pdf", b"x" * (1024 * 1024 + 1))
    assert storage.blobs == {}


@pytest.mark.asyncio
async def test_toggle_and_delete(core, storage):
    doc = await core.documents.upload_document("My Guide", "guide.pdf", b"pdf-bytes")

    assert await core.documents.toggle_active(doc["id"], False) is True
    assert (await core.persistence.get_document(doc["id"]))["is_active"] is False

    assert await core.documents.delete_document(doc["id"]) is True
    assert storage.blobs == {}
    assert await core.documents.delete_document(doc["id"]) is False


@pytest.mark.asyncio
async def test_delete_survives_blob_removal_failure(core, storage, monkeypatch):
    doc = await core.documents.upload_document("My Guide", "guide.pdf", b"pdf-bytes")

    async def broken_delete(key):
        raise ConnectionError("storage down")

    monkeypatch.setattr(storage, "delete", broken_delete)
    assert await core.documents.delete_document(doc["id"]) is True
    assert await core.persistence.get_document(doc["id"]) is None
