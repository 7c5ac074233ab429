from pydantic import BaseModel, Field


class AcceptedCountBatchRequest(BaseModel):
    itlCodes: list[str] = Field(default_factory=list)
    start: str | None = None
    end: str | None = None


class AcceptedCountBatchResponse(BaseModel):
    data: dict[str, int]


class LeadCountItem(BaseModel):
    count: int
    last_updated: str | None = None


class LeadCountsResponse(BaseModel):
    success: bool = True
    data: dict[str, LeadCountItem]


class LeadStatsResponse(BaseModel):
    campaign_code: str
    total_accepted: int
    total_rejected: int
    first_report_date: str | None = None
    last_report_date: str | None = None
    last_updated: str | None = None


class DeliveredDay(BaseModel):
    date: str
    accepted: int
    rejected: int


class DeliveredResponse(BaseModel):
    campaign_code: str
    delivered: int
    rejected: int
    daily: list[DeliveredDay]


class UploadResponse(BaseModel):
    ok: bool
    mode: str
    stats: dict[str, int]
    campaign_codes: list[str]


class CampaignUpdateEditRequest(BaseModel):
    message: str = Field(max_length=5000)
