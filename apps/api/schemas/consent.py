from datetime import datetime
from enum import StrEnum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator


class ConsentStatus(StrEnum):
    PENDING = "pending"
    ACTIVE = "active"


class StatusFilter(StrEnum):
    ALL = "all"
    ACTIVE = "active"
    PENDING = "pending"

    def as_query(self) -> Optional[str]:
        """Status constraint sent to the Consent Service; ``all`` means none."""
        if self is StatusFilter.ALL:
            return None
        return self.value

    def matches(self, status: str) -> bool:
        return self is StatusFilter.ALL or status == self.value


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Consent(_CamelModel):
    id: str
    patient_id: str = Field(alias="patientId")
    purpose: str
    wallet_address: str = Field(alias="walletAddress")
    signature: str
    status: str
    blockchain_tx_hash: Optional[str] = Field(default=None, alias="blockchainTxHash")
    # Dates the service formats some other way are kept as given.
    created_at: Optional[Union[datetime, str]] = Field(default=None, alias="createdAt", union_mode="left_to_right")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value):
        # Services hand out integer or string ids; both are opaque here.
        if isinstance(value, (int, str)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("blockchain_tx_hash", mode="before")
    @classmethod
    def _blank_hash_is_absent(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def is_pending(self) -> bool:
        return self.status == ConsentStatus.PENDING.value


class ConsentCreate(_CamelModel):
    patient_id: str = Field(alias="patientId")
    purpose: str
    wallet_address: str = Field(alias="walletAddress")
    signature: str


class ConsentUpdate(_CamelModel):
    status: ConsentStatus
    blockchain_tx_hash: Optional[str] = Field(default=None, alias="blockchainTxHash")


class VerificationVerdict(_CamelModel):
    is_valid: Optional[StrictBool] = Field(default=None, alias="isValid")

    @field_validator("is_valid", mode="before")
    @classmethod
    def _only_literal_booleans(cls, value):
        # "false", 0 and friends are not a verdict.
        return value if isinstance(value, bool) else None
