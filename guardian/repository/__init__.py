"""Repository layer: database access only. No ORM calls in business logic."""

from guardian.repository.history_repo import HistoryStore, ensure_identity

__all__ = ["HistoryStore", "ensure_identity"]
