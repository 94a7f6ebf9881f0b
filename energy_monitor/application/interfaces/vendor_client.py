"""
Vendor client interface (port).

The sync service depends on this contract; concrete HTTP clients live
outside the core.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ...domain.entities.point import PointMetadata
from ...domain.entities.system import System


@dataclass
class RawInterval:
    """
    One vendor interval.

    fields maps a vendor field name (e.g. "E1.kwh") to its value; quality is
    the vendor's label such as "billable" or "estimated".
    """
    end_ms: int
    fields: Dict[str, Optional[float]] = field(default_factory=dict)
    quality: Optional[str] = None


class VendorClient(ABC):
    """Interface for a vendor data source."""

    @abstractmethod
    async def fetch_intervals(
        self,
        system: System,
        start_unix: Optional[int] = None,
        end_unix: Optional[int] = None,
        kind: str = "usage",
    ) -> List[RawInterval]:
        """
        Fetch intervals between two Unix times (seconds).

        Without start and end the vendor returns today's partial data.
        """
        pass

    @abstractmethod
    def describe_field(self, name: str) -> PointMetadata:
        """Point metadata for a vendor field name."""
        pass
