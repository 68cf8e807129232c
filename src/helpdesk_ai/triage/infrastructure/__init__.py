"""
Triage Infrastructure Layer
===========================

LLM-backed classify/draft provider.
"""
