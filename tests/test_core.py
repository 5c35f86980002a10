import pytest

from leadmagnet_service.attachments import S3ObjectStorage
from leadmagnet_service.core import LeadMagnetCore

from .helpers import add_document


def test_from_settings_requires_bucket():
    with pytest.raises(ValueError):
        LeadMagnetCore.from_settings({"db_path": ":memory:"})


def test_from_settings_wires_collaborators(tmp_path):
    svc = LeadMagnetCore.from_settings(
        {
            "db_path": str(tmp_path / "lead.db"),
            "storage_bucket": "docs",
            "storage_endpoint_url": "https://r2.example.com",
            "storage_access_key_id": "key",
            "storage_secret_access_key": "secret",
            "resend_api_key": "re_123",
            "webhook_secret": "whsec",
            "rate_limit_max": 5,
            "rate_limit_window": 60.0,
            "max_file_size_mb": 10,
            "send_timeout": 12.0,
        }
    )
    assert isinstance(svc.attachments.storage, S3ObjectStorage)
    assert svc.attachments.storage.bucket == "docs"
    assert svc.provider.api_key == "re_123"
    assert svc.provider.timeout == 12.0
    assert svc.tracker.webhook_secret == "whsec"
    assert svc.rate_limiter.max_attempts == 5
    assert svc.rate_limiter.window_seconds == 60.0
    assert svc.documents.max_file_size_mb == 10


@pytest.mark.asyncio
async def test_view_document_records_views_for_active_documents(core, storage):
    doc = await add_document(core, storage)
    await add_document(core, storage, slug="hidden", is_active=False)

    viewed = await core.view_document("guide-ab12", "1.2.3.4")
    assert viewed["id"] == doc["id"]
    await core.view_document("guide-ab12", None)
    assert await core.persistence.count_document_views(doc["id"]) == 2

    assert await core.view_document("hidden", "1.2.3.4") is None
    assert await core.view_document("missing", "1.2.3.4") is None
