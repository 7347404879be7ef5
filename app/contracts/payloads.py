from __future__ import annotations

from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.domain.states import RequestType, ServiceType


class _RequestData(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)


class BillPaymentData(_RequestData):
    bill_id: str | None = Field(default=None, alias="billId")


class NewConnectionData(_RequestData):
    pincode: str | None = None
    address: str | None = None
    state: str | None = None


class ComplaintData(_RequestData):
    category: str | None = None


class DocumentRequestData(_RequestData):
    document_type: str | None = Field(default=None, alias="documentType")


class MeterReadingData(_RequestData):
    connection_id: str | None = Field(default=None, alias="connectionId")


RequestData = Union[BillPaymentData, NewConnectionData, ComplaintData, DocumentRequestData, MeterReadingData]

REQUEST_DATA_MODELS: dict[RequestType, type[_RequestData]] = {
    RequestType.BILL_PAYMENT: BillPaymentData,
    RequestType.NEW_CONNECTION: NewConnectionData,
    RequestType.COMPLAINT_REGISTRATION: ComplaintData,
    RequestType.DOCUMENT_REQUEST: DocumentRequestData,
    RequestType.METER_READING: MeterReadingData,
}


class CheckRequest(BaseModel):
    """A citizen's pending request, with `data` bound to the payload type of `request_type`."""

    model_config = ConfigDict(frozen=True)

    request_type: RequestType
    service_type: ServiceType
    user_id: str = Field(min_length=1)
    kiosk_id: str | None = None
    data: RequestData

    @model_validator(mode="before")
    @classmethod
    def _bind_payload(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        raw_type = values.get("request_type")
        data = values.get("data")
        if raw_type is None or isinstance(data, BaseModel):
            return values
        model = REQUEST_DATA_MODELS[RequestType(raw_type)]
        return {**values, "data": model.model_validate(data or {})}

    @model_validator(mode="after")
    def _payload_matches_type(self) -> "CheckRequest":
        expected = REQUEST_DATA_MODELS[self.request_type]
        if not isinstance(self.data, expected):
            raise ValueError(f"{self.request_type.value} requires {expected.__name__} data")
        return self
