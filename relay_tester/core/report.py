"""Test reports produced at the end of each capability test."""

from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeAlias

from .models import Nip

if TYPE_CHECKING:
    from .logger import LogEvent


@dataclass(frozen=True)
class Diagnostic:
    """A rendered, human-readable record of one anomaly."""

    message: str
    event: "LogEvent"

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class Passed:
    """No anomaly was recorded for the capability."""

    nip: Nip

    @property
    def passed(self) -> bool:
        return True


@dataclass(frozen=True)
class Failed:
    """One or more anomalies were recorded, in logging order."""

    nip: Nip
    errors: tuple[Diagnostic, ...]

    def __post_init__(self) -> None:
        if not self.errors:
            raise ValueError("a failed report needs at least one diagnostic")

    @property
    def passed(self) -> bool:
        return False


TestReport: TypeAlias = Passed | Failed
