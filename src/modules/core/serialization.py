"""JSON normalisation helpers for outbox payloads, audit details and
gateway payloads stored in ``JSONField`` columns."""

from __future__ import annotations

import json
from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict
from uuid import UUID


def serialize_event_payload(event: Any) -> Dict[str, Any]:
    data = asdict(event)
    normalized = normalize_for_json(data)
    return json.loads(json.dumps(normalized))


def normalize_for_json(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [normalize_for_json(item) for item in value]
    if isinstance(value, dict):
        return {str(key): normalize_for_json(val) for key, val in value.items()}
    return value
