"""Lead-magnet delivery microservice.

Features:
    - Public landing endpoint collecting email addresses per document slug
    - Per-address rate limiting of lead submissions
    - Sender/template resolution with placeholder substitution
    - Document delivery as an email attachment through the Resend API
    - Delivery tracking through provider webhooks and a polled status endpoint
    - Client-side confirmation flow with polling and manual confirmation
    - Prometheus metrics for monitoring
    - SQLite persistence

Example::

    from leadmagnet_service.api import create_app
    from leadmagnet_service.attachments import S3ObjectStorage
    from leadmagnet_service.core import LeadMagnetCore

    storage = S3ObjectStorage("documents", endpoint_url="https://<account>.r2.cloudflarestorage.com")
    service = LeadMagnetCore(db_path="/data/leadmagnet.db", storage=storage)
    app = create_app(service, api_token="secret")
"""

__version__ = "0.3.0"
