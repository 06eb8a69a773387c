from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tickerdesk.constants import DEFAULT_API_TIMEOUT_S, PERSISTED_BRANCHES


class ApiConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    base_url: str = "http://localhost:8000"
    timeout: float = Field(default=DEFAULT_API_TIMEOUT_S, gt=0)

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Require an absolute http(s) URL and drop any trailing slash."""
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Invalid base_url: {v}. Expected an http:// or https:// URL")
        return v.rstrip("/")


class PersistenceConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    enabled: bool = True
    path: Optional[str] = None  # None = ~/.tickerdesk/state.json
    whitelist: List[str] = list(PERSISTED_BRANCHES)

    @field_validator("whitelist")
    @classmethod
    def validate_whitelist(cls, v: List[str]) -> List[str]:
        unknown = [branch for branch in v if branch not in PERSISTED_BRANCHES]
        if unknown:
            raise ValueError(f"Unknown persisted branches: {', '.join(unknown)}")
        return v


class DashboardConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    api: ApiConfig = ApiConfig()
    persistence: PersistenceConfig = PersistenceConfig()
