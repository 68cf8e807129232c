"""
Infrastructure Module
=====================

Framework and vendor adapters shared by all bounded contexts:
database engine/sessions, LLM client and the Milvus search backend.
"""
