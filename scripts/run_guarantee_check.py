#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json

from app.contracts.payloads import CheckRequest
from app.domain.states import RequestType, ServiceType
from app.logging_config import setup_logging
from app.services.guarantee_service import GuaranteeService


def _parse_pairs(pairs: list[str]) -> dict[str, str]:
    data: dict[str, str] = {}
    for pair in pairs:
        if "=" not in pair:
            raise SystemExit(f"--data expects key=value, got {pair!r}")
        key, value = pair.split("=", 1)
        data[key.strip()] = value.strip()
    return data


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a single-interaction guarantee check")
    parser.add_argument("--user-id", required=True, help="Citizen identifier")
    parser.add_argument("--request-type", required=True, choices=[t.value for t in RequestType])
    parser.add_argument("--service-type", required=True, choices=[t.value for t in ServiceType])
    parser.add_argument("--kiosk-id", default=None, help="Kiosk the request originates from")
    parser.add_argument(
        "--data",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Request field, e.g. billId=B1 or pincode=781001 (repeatable)",
    )
    parser.add_argument("--log", action="store_true", help="Persist the check record")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    setup_logging()
    service = GuaranteeService()

    request = CheckRequest(
        request_type=args.request_type,
        service_type=args.service_type,
        user_id=args.user_id,
        kiosk_id=args.kiosk_id,
        data=_parse_pairs(args.data),
    )
    if args.log:
        record_id, result = service.check(request)
        output = {"sigm_log_id": record_id, **result.model_dump(mode="json")}
    else:
        output = service.run_check(request).model_dump(mode="json")

    print(json.dumps(output, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
