"""Pydantic schemas for the HTTP API layer and the agreement seed file."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, Field, model_validator

from models.records import Agreement, ensure_utc


class AgreementRecord(BaseModel):
    """Serialized form of an agreement, as accepted by the API and seed file."""

    id: str = Field(..., min_length=1)
    asset_id: str = Field(..., min_length=1)
    customer_id: str = Field(..., min_length=1)
    speed_limit: float = Field(..., gt=0, allow_inf_nan=False)
    start_time: datetime
    end_time: datetime

    @model_validator(mode="after")
    def _check_window(self) -> "AgreementRecord":
        if ensure_utc(self.start_time) >= ensure_utc(self.end_time):
            raise ValueError("start_time must be before end_time")
        return self

    def to_agreement(self) -> Agreement:
        return Agreement(
            id=self.id,
            asset_id=self.asset_id,
            customer_id=self.customer_id,
            speed_limit=self.speed_limit,
            start_time=self.start_time,
            end_time=self.end_time,
        )

    @classmethod
    def from_agreement(cls, agreement: Agreement) -> "AgreementRecord":
        return cls(
            id=agreement.id,
            asset_id=agreement.asset_id,
            customer_id=agreement.customer_id,
            speed_limit=agreement.speed_limit,
            start_time=agreement.start_time,
            end_time=agreement.end_time,
        )


class SpeedUpdate(BaseModel):
    # Range checks happen in the evaluator so API and feed reject samples alike.
    speed: float = Field(..., description="Observed speed, same unit as the agreement limit.")


class SpeedUpdateResponse(BaseModel):
    """Result of ingesting one speed sample."""

    asset_id: str
    speed: float
    received_at: datetime
    delivered: bool = Field(..., description="Whether the asset is monitored and its observer received the sample.")
    violation: bool = False
    message: Optional[str] = None


class DeviceRegistration(BaseModel):
    token: str = Field(..., min_length=1, description="Push registration token of the customer's device.")


class ReloadResponse(BaseModel):
    agreement_count: int = Field(..., ge=0)


class PushContent(BaseModel):
    title: str
    body: str


class PushMessage(BaseModel):
    """Body of one request to the push-notification backend."""

    to: str
    notification: PushContent
    data: Dict[str, str] = Field(default_factory=dict)
