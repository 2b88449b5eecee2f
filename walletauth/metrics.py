"""Prometheus metrics for the authentication flow."""

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest

registry = CollectorRegistry()

challenges_issued = Counter(
    "walletauth_challenges_issued_total",
    "Total login challenges issued",
    registry=registry,
)
auth_attempts = Counter(
    "walletauth_auth_attempts_total",
    "Authentication attempts by result",
    ["result"],
    registry=registry,
)
live_nonces = Gauge(
    "walletauth_live_nonces",
    "Challenges currently held in the nonce registry",
    registry=registry,
)

# auth_attempts is labelled with the outcome action or the failure reason;
# store errors after consumption use these
RESULT_CONFLICT = "identity_conflict"
RESULT_STORE_FAILURE = "store_failure"


def render_latest() -> bytes:
    """Serialize the registry in the Prometheus text format."""
    return generate_latest(registry)
