"""Document extraction interface."""

from abc import ABC, abstractmethod
from typing import Any, Dict


class ExtractionService(ABC):
    """Reads invoice fields out of a stored document."""

    @abstractmethod
    def extract(self, document_key: str) -> Dict[str, Any]:
        """
        Extract best-effort fields from a document.

        Args:
            document_key: Object key of the stored document

        Returns:
            Dict with raw text values for amount, date, vendor_name and currency;
            any of them may be None or garbled

        Raises:
            ExternalServiceError: If the service fails or times out
        """
