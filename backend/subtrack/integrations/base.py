"""
Base adapter interface for statement imports.
"""
from abc import ABC, abstractmethod
from typing import List

from subtrack.schemas import RawTransaction


class StatementAdapter(ABC):
    """Abstract base class for uploaded statement files (CSV, PDF)."""

    source_name: str = "statement"

    @abstractmethod
    def fetch_transactions(self) -> List[RawTransaction]:
        """Parse the statement into normalized transactions."""
        pass
