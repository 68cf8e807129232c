"""
Tickets Module
==============

Bounded Context for the ticket store and user directory.

The triage pipeline reads tickets and updates their status, priority,
assignee and reply thread; everything else about tickets is owned elsewhere.
"""
