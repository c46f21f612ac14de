"""shipctl - release promotion to a single host with automatic rollback."""

__version__ = "0.1.0"
