"""Persistence for remote job handles that may still need cleanup."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from ..db.db_models import JobHandleModel


@dataclass(slots=True)
class OutstandingHandle:
    handle: str
    request_key: str
    target_ref: str
    created_at: datetime


class JobHandleRepository:
    """Record submitted handles until their remote job has been deleted."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def record(self, *, handle: str, request_key: str, target_ref: str) -> None:
        with self._session_factory() as session:
            session.merge(
                JobHandleModel(
                    handle=handle,
                    request_key=request_key,
                    target_ref=target_ref,
                    created_at=datetime.utcnow(),
                    compensated_at=None,
                )
            )
            session.commit()

    def mark_compensated(self, handle: str, compensated_at: datetime | None = None) -> None:
        with self._session_factory() as session:
            model = session.get(JobHandleModel, handle)
            if model is None:
                raise KeyError(f"Job handle '{handle}' not found")
            model.compensated_at = compensated_at or datetime.utcnow()
            session.commit()

    def list_outstanding(self, *, older_than: datetime | None = None) -> list[OutstandingHandle]:
        with self._session_factory() as session:
            query = session.query(JobHandleModel).filter(JobHandleModel.compensated_at.is_(None))
            if older_than is not None:
                query = query.filter(JobHandleModel.created_at <= older_than)
            rows = query.order_by(JobHandleModel.created_at).all()
            return [self._to_domain(row) for row in rows]

    @staticmethod
    def _to_domain(model: JobHandleModel) -> OutstandingHandle:
        return OutstandingHandle(
            handle=model.handle,
            request_key=model.request_key,
            target_ref=model.target_ref,
            created_at=model.created_at,
        )


__all__ = ["JobHandleRepository", "OutstandingHandle"]
