from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from app.domain.states import RequestType


@dataclass(frozen=True)
class RequestTypeConfig:
    request_type: RequestType
    required_documents: frozenset[str]
    service_area_check: bool
    technician_required: bool
    duplicate_check_window: int  # hours
    lock_duration: int  # hours


REQUEST_TYPE_CONFIGS: Mapping[RequestType, RequestTypeConfig] = MappingProxyType(
    {
        RequestType.BILL_PAYMENT: RequestTypeConfig(
            request_type=RequestType.BILL_PAYMENT,
            required_documents=frozenset(),
            service_area_check=False,
            technician_required=False,
            duplicate_check_window=24,
            lock_duration=24,
        ),
        RequestType.NEW_CONNECTION: RequestTypeConfig(
            request_type=RequestType.NEW_CONNECTION,
            required_documents=frozenset({"ID_PROOF", "ADDRESS_PROOF"}),
            service_area_check=True,
            technician_required=True,
            duplicate_check_window=720,
            lock_duration=720,
        ),
        RequestType.COMPLAINT_REGISTRATION: RequestTypeConfig(
            request_type=RequestType.COMPLAINT_REGISTRATION,
            required_documents=frozenset(),
            service_area_check=True,
            technician_required=False,
            duplicate_check_window=168,
            lock_duration=168,
        ),
        RequestType.DOCUMENT_REQUEST: RequestTypeConfig(
            request_type=RequestType.DOCUMENT_REQUEST,
            required_documents=frozenset({"ID_PROOF"}),
            service_area_check=False,
            technician_required=False,
            duplicate_check_window=72,
            lock_duration=72,
        ),
        RequestType.METER_READING: RequestTypeConfig(
            request_type=RequestType.METER_READING,
            required_documents=frozenset(),
            service_area_check=False,
            technician_required=False,
            duplicate_check_window=720,
            lock_duration=720,
        ),
    }
)


def config_for(request_type: RequestType | str) -> RequestTypeConfig:
    return REQUEST_TYPE_CONFIGS[RequestType(request_type)]
