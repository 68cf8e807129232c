"""
Shared Infrastructure
=====================

Logging, resilience helpers, notification delivery and the audit log.
"""
