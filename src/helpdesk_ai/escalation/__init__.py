"""
Escalation Module
=================

Rule-based escalation of tickets after triage and on a periodic sweep.
"""
