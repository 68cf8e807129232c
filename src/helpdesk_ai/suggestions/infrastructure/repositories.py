"""
Suggestion Infrastructure Repositories
======================================

SQLAlchemy implementation of the suggestion repository.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from helpdesk_ai.core.exceptions import DuplicateSuggestionError, RepositoryException
from helpdesk_ai.infrastructure.database import as_utc
from helpdesk_ai.suggestions.application import ISuggestionRepository, SuggestionListQuery
from helpdesk_ai.suggestions.domain import AgentSuggestion, ModelInfo, SuggestionFeedback
from helpdesk_ai.suggestions.infrastructure.models import AgentSuggestionModel


def _feedback_to_json(feedback: SuggestionFeedback) -> dict:
    return {
        "agent_id": feedback.agent_id,
        "action": feedback.action,
        "comment": feedback.comment,
        "edited_reply": feedback.edited_reply,
        "created_at": feedback.created_at.isoformat(),
    }


def _feedback_from_json(data: dict) -> SuggestionFeedback:
    return SuggestionFeedback(
        agent_id=data["agent_id"],
        action=data["action"],
        comment=data.get("comment"),
        edited_reply=data.get("edited_reply"),
        created_at=as_utc(datetime.fromisoformat(data["created_at"])),
    )


def _to_entity(model: AgentSuggestionModel) -> AgentSuggestion:
    return AgentSuggestion(
        id=model.id,
        ticket_id=model.ticket_id,
        predicted_category=model.predicted_category,
        article_ids=list(model.article_ids or []),
        draft_reply=model.draft_reply,
        confidence=model.confidence,
        model_info=ModelInfo(
            provider=model.provider,
            model=model.model,
            prompt_version=model.prompt_version,
            latency_ms=model.latency_ms,
        ),
        auto_closed=model.auto_closed,
        feedback=[_feedback_from_json(item) for item in (model.feedback or [])],
        created_at=as_utc(model.created_at),
        updated_at=as_utc(model.updated_at),
    )


class SQLAlchemySuggestionRepository(ISuggestionRepository):
    """
    SQLAlchemy implementation of suggestion repository.

    ``create`` maps the unique-constraint violation on ``ticket_id`` to
    ``DuplicateSuggestionError``.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def create(self, suggestion: AgentSuggestion) -> AgentSuggestion:
        async with self._session_maker() as session:
            model = AgentSuggestionModel(
                ticket_id=suggestion.ticket_id,
                predicted_category=suggestion.predicted_category,
                article_ids=list(suggestion.article_ids),
                draft_reply=suggestion.draft_reply,
                confidence=suggestion.confidence,
                auto_closed=suggestion.auto_closed,
                provider=suggestion.model_info.provider,
                model=suggestion.model_info.model,
                prompt_version=suggestion.model_info.prompt_version,
                latency_ms=suggestion.model_info.latency_ms,
                feedback=[_feedback_to_json(f) for f in suggestion.feedback],
                created_at=suggestion.created_at,
                updated_at=suggestion.updated_at,
            )
            if suggestion.id:
                model.id = suggestion.id
            session.add(model)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise DuplicateSuggestionError(suggestion.ticket_id)

            suggestion.id = model.id
        return suggestion

    async def get_by_ticket(self, ticket_id: str) -> Optional[AgentSuggestion]:
        async with self._session_maker() as session:
            stmt = select(AgentSuggestionModel).where(AgentSuggestionModel.ticket_id == ticket_id)
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            return _to_entity(model) if model else None

    async def update(self, suggestion: AgentSuggestion) -> AgentSuggestion:
        async with self._session_maker() as session:
            stmt = select(AgentSuggestionModel).where(AgentSuggestionModel.ticket_id == suggestion.ticket_id)
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            if model is None:
                raise RepositoryException(f"Suggestion for ticket {suggestion.ticket_id} not found")

            model.auto_closed = suggestion.auto_closed
            model.feedback = [_feedback_to_json(f) for f in suggestion.feedback]
            model.updated_at = suggestion.updated_at
            await session.commit()
        return suggestion

    async def list(self, query: SuggestionListQuery) -> List[AgentSuggestion]:
        async with self._session_maker() as session:
            stmt = select(AgentSuggestionModel)
            if query.auto_closed is not None:
                stmt = stmt.where(AgentSuggestionModel.auto_closed.is_(query.auto_closed))
            if query.min_confidence is not None:
                stmt = stmt.where(AgentSuggestionModel.confidence >= query.min_confidence)
            if query.max_confidence is not None:
                stmt = stmt.where(AgentSuggestionModel.confidence <= query.max_confidence)
            stmt = stmt.order_by(AgentSuggestionModel.created_at.desc()).limit(query.limit)
            result = await session.execute(stmt)
            return [_to_entity(model) for model in result.scalars().all()]

    async def list_since(self, since: Optional[datetime]) -> List[AgentSuggestion]:
        async with self._session_maker() as session:
            stmt = select(AgentSuggestionModel)
            if since is not None:
                stmt = stmt.where(AgentSuggestionModel.created_at >= since)
            stmt = stmt.order_by(AgentSuggestionModel.created_at)
            result = await session.execute(stmt)
            return [_to_entity(model) for model in result.scalars().all()]
