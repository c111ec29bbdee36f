"""Database models and utilities."""

from .db_models import Base, JobHandleModel

__all__ = ["Base", "JobHandleModel"]
