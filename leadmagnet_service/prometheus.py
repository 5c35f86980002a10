"""Prometheus metrics exposed by the lead-magnet service."""

from prometheus_client import CollectorRegistry, Counter, generate_latest


class LeadMetrics:
    """Wrapper around the Prometheus registry used by the service."""

    def __init__(self, registry: CollectorRegistry | None = None):
        """Create counters inside the provided registry."""
        self.registry = registry or CollectorRegistry()
        self.submissions = Counter(
            "lms_submissions_total", "Lead submissions by outcome", ["outcome"], registry=self.registry
        )
        self.sends = Counter("lms_sends_total", "Emails accepted by the provider", registry=self.registry)
        self.webhook_events = Counter(
            "lms_webhook_events_total", "Provider webhook events received", ["event_type"], registry=self.registry
        )
        self.views = Counter("lms_document_views_total", "Landing page views", registry=self.registry)

    def inc_submission(self, outcome: str):
        """Increase the submission counter for ``outcome`` (``success`` or an error code)."""
        self.submissions.labels(outcome=outcome or "unknown").inc()

    def inc_sent(self):
        """Increase the ``sends`` counter."""
        self.sends.inc()

    def inc_webhook_event(self, event_type: str):
        """Increase the webhook counter for the given event type."""
        self.webhook_events.labels(event_type=event_type or "unknown").inc()

    def inc_view(self):
        self.views.inc()

    def generate_latest(self) -> bytes:
        """Return the latest metrics snapshot in Prometheus text format."""
        return generate_latest(self.registry)
