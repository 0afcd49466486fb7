from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class HealthStatus(str, Enum):
    OPERATIONAL = "operational"
    DEGRADED = "degraded"
    FAILED = "failed"
    VALIDATION_FAILED = "validation_failed"
    MAINTENANCE = "maintenance"
    ERROR = "error"


class ProviderConfig(BaseModel):
    """A monitored model endpoint, as stored in check_configs"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Stable provider ID")
    name: str = Field(..., description="Display name")
    type: str = Field(..., description="Protocol family: anthropic, openai, gemini")
    model: str = Field(default="", description="Model identifier sent to the endpoint")
    endpoint: Optional[str] = Field(None, description="Full request URL")
    api_key: str = Field(default="", description="Credential for the endpoint")
    request_headers: Optional[Dict[str, str]] = Field(None, description="Custom HTTP headers")
    metadata: Optional[Dict[str, Any]] = Field(None, description="Extra request parameters")
    enabled: bool = True
    is_maintenance: bool = False
    group_name: Optional[str] = None

    @field_validator("type")
    @classmethod
    def normalize_type(cls, v):
        return v.strip().lower()

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ProviderConfig":
        return cls(
            id=str(row["id"]),
            name=row.get("name") or "",
            type=row.get("type") or "",
            model=row.get("model") or "",
            endpoint=row.get("endpoint"),
            api_key=row.get("api_key") or "",
            request_headers=row.get("request_header") or None,
            metadata=row.get("metadata") or None,
            enabled=row.get("enabled", True),
            is_maintenance=row.get("is_maintenance", False),
            group_name=row.get("group_name"),
        )


class Challenge(BaseModel):
    prompt: str
    expected_answer: str


class CheckResult(BaseModel):
    """Outcome of one probe; immutable once created"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Provider ID")
    name: str = Field(..., description="Provider display name")
    type: str = Field(..., description="Protocol family")
    endpoint: str = Field(default="", description="Endpoint that was checked")
    model: str = Field(default="", description="Model identifier")
    status: HealthStatus
    latency_ms: Optional[int] = Field(None, description="Model call latency, null when not measurable")
    ping_latency_ms: Optional[int] = Field(None, description="Network round-trip latency")
    checked_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    message: str = ""
    group_name: Optional[str] = None


HistorySnapshot = Dict[str, List[CheckResult]]
