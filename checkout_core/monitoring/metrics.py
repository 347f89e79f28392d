"""
Prometheus metrics for checkout monitoring.

Tracks:
- Payment attempts by engine and outcome
- Payment processing duration
- Stripe API calls, errors and circuit breaker state
- Webhook events by provider
- Emails sent and files uploaded per provider
- Demo order auto-advances
"""
from prometheus_client import Counter, Gauge, Histogram

# Payment metrics
payment_requests_total = Counter(
    "checkout_payment_requests_total",
    "Total number of payment attempts",
    ["engine", "status"],  # engine: demo, stripe; status: succeeded, failed
)

payment_processing_duration_seconds = Histogram(
    "checkout_payment_processing_duration_seconds",
    "Payment processing duration in seconds",
    ["engine"],
    buckets=(0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0),
)

# Stripe API metrics
stripe_api_requests_total = Counter(
    "checkout_stripe_api_requests_total",
    "Total Stripe API requests",
    ["operation", "status"],
)

stripe_api_errors_total = Counter(
    "checkout_stripe_api_errors_total",
    "Total Stripe API errors",
    ["error_type"],  # transient, permanent, rate_limit
)

stripe_api_duration_seconds = Histogram(
    "checkout_stripe_api_duration_seconds",
    "Stripe API call duration in seconds",
    ["operation"],
    buckets=(0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0),
)

stripe_circuit_breaker_state = Gauge(
    "checkout_stripe_circuit_breaker_state",
    "Stripe circuit breaker state (0=closed, 1=open, 2=half_open)",
)

# Webhook metrics
webhook_events_total = Counter(
    "checkout_webhook_events_total",
    "Total webhook events handled",
    ["provider", "event_type", "status"],
)

webhook_processing_duration_seconds = Histogram(
    "checkout_webhook_processing_duration_seconds",
    "Webhook processing duration in seconds",
    ["provider"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

# Provider metrics
emails_sent_total = Counter(
    "checkout_emails_sent_total",
    "Total emails sent",
    ["provider", "status"],
)

uploads_total = Counter(
    "checkout_uploads_total",
    "Total file uploads",
    ["provider", "status"],
)

# Order progression metrics
order_auto_advances_total = Counter(
    "checkout_order_auto_advances_total",
    "Total demo order status auto-advances",
    ["status", "outcome"],  # outcome: success, failed
)

order_advances_scheduled = Gauge(
    "checkout_order_advances_scheduled",
    "Number of demo orders with a pending auto-advance",
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_payment(engine: str, success: bool, duration_seconds: float) -> None:
        """Record a payment attempt."""
        status = "succeeded" if success else "failed"
        payment_requests_total.labels(engine=engine, status=status).inc()
        payment_processing_duration_seconds.labels(engine=engine).observe(duration_seconds)

    @staticmethod
    def record_stripe_api_call(
        operation: str, status: str, duration_seconds: float
    ) -> None:
        """Record Stripe API call."""
        stripe_api_requests_total.labels(operation=operation, status=status).inc()
        stripe_api_duration_seconds.labels(operation=operation).observe(duration_seconds)

    @staticmethod
    def record_stripe_api_error(error_type: str) -> None:
        """Record Stripe API error."""
        stripe_api_errors_total.labels(error_type=error_type).inc()

    @staticmethod
    def set_circuit_breaker_state(state: str) -> None:
        """Set circuit breaker state."""
        state_map = {"closed": 0, "open": 1, "half_open": 2}
        stripe_circuit_breaker_state.set(state_map.get(state, 0))

    @staticmethod
    def record_webhook_event(
        provider: str, event_type: str, status: str, duration_seconds: float
    ) -> None:
        """Record webhook event processing."""
        webhook_events_total.labels(
            provider=provider, event_type=event_type, status=status
        ).inc()
        webhook_processing_duration_seconds.labels(provider=provider).observe(duration_seconds)

    @staticmethod
    def record_email(provider: str, success: bool) -> None:
        emails_sent_total.labels(provider=provider, status="sent" if success else "failed").inc()

    @staticmethod
    def record_upload(provider: str, success: bool) -> None:
        uploads_total.labels(provider=provider, status="stored" if success else "failed").inc()

    @staticmethod
    def record_order_advance(status: str, success: bool) -> None:
        """Record a demo order auto-advance."""
        outcome = "success" if success else "failed"
        order_auto_advances_total.labels(status=status, outcome=outcome).inc()

    @staticmethod
    def set_scheduled_advances(count: int) -> None:
        order_advances_scheduled.set(count)


# Export singleton instance
metrics = MetricsCollector()
