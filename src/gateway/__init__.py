"""Model Gateway: the HTTP conversation with the local Ollama endpoint."""

from fishbowl.gateway.backoff import BackoffMode, compute_delay
from fishbowl.gateway.client import GatewayStatus, ModelGateway
from fishbowl.gateway.monitor import AvailabilityMonitor
from fishbowl.gateway.security import sanitize_for_llm, validate_endpoint

__all__ = [
    "AvailabilityMonitor",
    "BackoffMode",
    "GatewayStatus",
    "ModelGateway",
    "compute_delay",
    "sanitize_for_llm",
    "validate_endpoint",
]
