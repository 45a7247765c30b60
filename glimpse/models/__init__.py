"""Glimpse models - re-exports all models and Base.metadata."""

from .base import Base, StringIDMixin, TimestampMixin
from .auth import AuthSession, User
from .task import Task

__all__ = [
    "Base",
    "StringIDMixin",
    "TimestampMixin",
    "AuthSession",
    "User",
    "Task",
]
