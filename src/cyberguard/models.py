from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class Variant(StrEnum):
    URL = "URL"
    HASH = "Hash"
    FILE = "File"


class ExhaustionAction(StrEnum):
    FAIL = "fail"
    QUEUE = "queue"
    NONE = "none"


class PollPolicy(BaseModel):
    max_attempts: int = Field(ge=1)
    delay_seconds: float = Field(ge=0.0)
    on_exhausted: ExhaustionAction


class ProviderStats(BaseModel):
    """Engine verdict counts. Unknown provider keys (e.g. ``type-unsupported``) are ignored."""

    model_config = ConfigDict(extra="ignore")

    malicious: int = Field(default=0, ge=0)
    suspicious: int = Field(default=0, ge=0)
    harmless: int = Field(default=0, ge=0)
    undetected: int = Field(default=0, ge=0)
    timeout: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        # timeouts carry no verdict and stay out of every ratio
        return self.harmless + self.undetected + self.malicious + self.suspicious


class ProviderMetadata(BaseModel):
    reputation: int | None = None
    threat_names: list[str] = Field(default_factory=list)
    categories: dict[str, str] = Field(default_factory=dict)


class IntelReport(BaseModel):
    stats: ProviderStats = Field(default_factory=ProviderStats)
    metadata: ProviderMetadata = Field(default_factory=ProviderMetadata)
    analysis_id: str | None = None


class ScanRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    raw_input: str
    variant: Variant
    file_bytes: bytes | None = Field(default=None, repr=False)
    is_dark_web_query: bool = False

    @property
    def variant_label(self) -> str:
        if self.is_dark_web_query:
            return "darkweb"
        return self.variant.value.lower()


class RiskScore(BaseModel):
    is_safe: bool
    safety_score: int = Field(ge=0, le=100)


class RiskDistribution(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    safe_pct: int = Field(alias="Safe", ge=0, le=100)
    malicious_pct: int = Field(alias="Malicious", ge=0, le=100)
    suspicious_pct: int = Field(alias="Suspicious", ge=0, le=100)


class ScanResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_safe: bool
    safety_score: int = Field(ge=0, le=100)
    stats: ProviderStats
    metadata: ProviderMetadata
    report_text: str
    variant_label: str
    input_label: str
    is_dark_web_query: bool = False
    scanned_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())

    def to_json(self) -> str:
        return self.model_dump_json(indent=2)


class ScanQueued(BaseModel):
    model_config = ConfigDict(frozen=True)

    analysis_id: str
    input_label: str
    variant_label: str
    message: str = "File scan queued, analysis still in progress"

    def to_json(self) -> str:
        return self.model_dump_json(indent=2)


class ParsedReport(BaseModel):
    title: str
    threats: list[str]
    reputation_notes: list[str]
    context: list[str]
    safety_tips: list[str]
    dark_web_notes: list[str] | None = None
    risk_distribution: RiskDistribution
