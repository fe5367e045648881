from dataclasses import dataclass, field
from typing import List, Optional

from .exceptions import ProvisionError
from .mounts import MountEntry


@dataclass
class ProvisionResult:
    """Outcome of provisioning a single mount entry.

    Attributes:
        entry: The mount entry that was provisioned
        ok: True if both endpoints exist with synchronized metadata
        created: Paths created during this run (persistent and runtime side)
        error: The failure, if provisioning this entry was aborted
    """

    entry: MountEntry
    ok: bool = True
    created: List[str] = field(default_factory=list)
    error: Optional[ProvisionError] = None


@dataclass
class ProvisionReport:
    """Results of a provisioning run, in plan order."""

    results: List[ProvisionResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(result.ok for result in self.results)

    @property
    def failed(self) -> List[ProvisionResult]:
        return [result for result in self.results if not result.ok]

    @property
    def succeeded(self) -> List[ProvisionResult]:
        return [result for result in self.results if result.ok]

    @property
    def created(self) -> List[str]:
        return [path for result in self.results for path in result.created]
