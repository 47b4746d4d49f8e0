"""smartsos: Smart SOS emergency-alert escalation service."""

__version__ = "0.1.0"
