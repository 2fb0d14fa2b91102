"""SQLModel table/entity definitions. Used by Repository layer only."""

from guardian.models.entities import AnalysisRecord

__all__ = ["AnalysisRecord"]
