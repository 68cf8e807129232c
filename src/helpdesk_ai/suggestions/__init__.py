"""
Suggestions Module
==================

Bounded Context for AI triage suggestions and agent feedback.

Responsibilities:
- Persist one suggestion per ticket (unique per ticket)
- Apply accept / modify / reject feedback from agents
- Report suggestion quality metrics
"""
