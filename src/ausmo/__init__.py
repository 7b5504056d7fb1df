"""Ausmo resilience: backup, disaster recovery and encrypted data lifecycle."""

__version__ = "1.0.0"
