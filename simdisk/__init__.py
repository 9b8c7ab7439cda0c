"""In-memory filesystem model with pending and durable state for crash-consistency testing."""

__version__ = "0.7.0"
__all__ = ["cache", "config", "filesystem", "records", "state"]