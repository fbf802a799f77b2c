import logging
from enum import Enum
from typing import Iterable, Iterator, List, Optional

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    WARNING = "warning"
    ERROR = "error"


class Diagnostic(BaseModel):
    """
        Class represents one user-facing problem found during a reconciliation pass.
    """
    model_config = ConfigDict(frozen=True)

    severity: Severity
    summary: str
    detail: str = ""
    key: Optional[str] = None

    def __str__(self) -> str:
        where = f" [{self.key}]" if self.key else ""
        return f"{self.severity.value}{where}: {self.summary}: {self.detail}"


class Diagnostics:
    """
    Ordered accumulator of diagnostics.

    Nothing here raises: validation keeps going so that a caller sees every
    problem of a pass at once.
    """

    def __init__(self, items: Optional[Iterable[Diagnostic]] = None):
        self._items: List[Diagnostic] = list(items or [])

    def add_warning(self, summary: str, detail: str = "", key: Optional[str] = None) -> Diagnostic:
        diag = Diagnostic(severity=Severity.WARNING, summary=summary, detail=detail, key=key)
        logger.warning(f"{summary}: {detail}")
        self._items.append(diag)
        return diag

    def add_error(self, summary: str, detail: str = "", key: Optional[str] = None) -> Diagnostic:
        diag = Diagnostic(severity=Severity.ERROR, summary=summary, detail=detail, key=key)
        logger.error(f"{summary}: {detail}")
        self._items.append(diag)
        return diag

    def extend(self, other: Iterable[Diagnostic]) -> None:
        self._items.extend(other)

    @property
    def warnings(self) -> List[Diagnostic]:
        return [d for d in self._items if d.severity is Severity.WARNING]

    @property
    def errors(self) -> List[Diagnostic]:
        return [d for d in self._items if d.severity is Severity.ERROR]

    @property
    def warnings_count(self) -> int:
        return len(self.warnings)

    @property
    def errors_count(self) -> int:
        return len(self.errors)

    def has_error(self) -> bool:
        return any(d.severity is Severity.ERROR for d in self._items)

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"Diagnostics(warnings={self.warnings_count}, errors={self.errors_count})"
