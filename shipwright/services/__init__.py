from shipwright.services.health import HealthVerifier

__all__ = [
    "HealthVerifier",
]
