"""
Shared Module
=============

Cross-cutting infrastructure used by every bounded context.
"""
