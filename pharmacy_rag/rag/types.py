"""
Request-scoped data shapes shared by every stage of the medication RAG pipeline.

The RetrievalContext is allocated per query by the orchestrator and is the only
mutable state threaded through the stages.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IntentType(str, Enum):
    DOSAGE = "dosage"
    USAGE = "usage"
    SIDE_EFFECTS = "side-effects"
    GENERAL = "general"
    UNKNOWN = "unknown"


@dataclass
class UserQuery:
    text: str
    user_id: str | None = None
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class DetectedIntent:
    type: IntentType
    drug_name: str
    confidence: float
    raw_query: str


@dataclass
class InventoryMatch:
    id: str
    name: str
    category: str
    in_stock: bool
    generic_name: str | None = None
    brand: str | None = None
    price: float | None = None
    description: str | None = None


@dataclass
class NormalizationResult:
    canonical_code: str
    canonical_name: str
    synonyms: list[str] = field(default_factory=list)
    term_type: str = "UNKNOWN"
    confidence_score: float = 0.0
    api_score: float | None = None


@dataclass
class DosageInfo:
    adults: str | None = None
    children: str | None = None
    frequency: str | None = None
    instructions: str | None = None
    warnings: str | None = None

    def is_empty(self) -> bool:
        return not any(getattr(self, f.name) for f in fields(self))


@dataclass
class UsageInfo:
    indications: list[str] = field(default_factory=list)
    contraindications: list[str] = field(default_factory=list)


@dataclass
class SideEffectsInfo:
    common: list[str] = field(default_factory=list)
    serious: list[str] = field(default_factory=list)


@dataclass
class ClinicalSections:
    dosage: DosageInfo | None = None
    usage: UsageInfo | None = None
    side_effects: SideEffectsInfo | None = None

    def populated(self) -> list[str]:
        return [f.name for f in fields(self) if getattr(self, f.name) is not None]


@dataclass
class ClinicalData:
    canonical_code: str
    drug_name: str
    sections: ClinicalSections
    source: str
    fetched_at: datetime = field(default_factory=_utcnow)


@dataclass
class RetrievalContext:
    intent: DetectedIntent
    inventory_matches: list[InventoryMatch] = field(default_factory=list)
    normalization_results: list[NormalizationResult] = field(default_factory=list)
    clinical_data: list[ClinicalData] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass
class StageError:
    stage: str
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass
class StageResult(Generic[T]):
    """Output of one retrieval stage plus the non-fatal errors it hit."""

    value: T
    errors: list[StageError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors
