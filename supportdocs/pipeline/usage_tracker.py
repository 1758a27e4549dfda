"""Usage telemetry for sandbox invocations.

Exactly one UsageRecord is written per invocation attempt, whether the
run succeeded, failed, timed out or never started. The sandboxed process
may leave a usage file in its output directory (the generation CLI's JSON
result); when it does not, the record is zeroed.
"""

import json
import logging
from typing import Any, Dict, Mapping, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.logging_config import redact
from ..models import UsageRecord
from ..repositories import UsageRepository

logger = logging.getLogger(__name__)

DEFAULT_USAGE_FILES = ("usage.json",)

# Stored error text is bounded; captured stderr can be long.
ERROR_MESSAGE_LIMIT = 2000


def _int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def parse_usage(raw: str) -> Dict[str, Any]:
    """Extract the counters we keep from one usage file.

    Raises:
        ValueError: the file is not a JSON object.
    """
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("usage file is not a JSON object")
    usage = data.get("usage")
    if not isinstance(usage, dict):
        usage = {}
    cost = data.get("total_cost_usd")
    return {
        "input_tokens": _int(usage.get("input_tokens")),
        "output_tokens": _int(usage.get("output_tokens")),
        "cache_creation_tokens": _int(usage.get("cache_creation_input_tokens")),
        "cache_read_tokens": _int(usage.get("cache_read_input_tokens")),
        "cost_usd": float(cost) if isinstance(cost, (int, float)) else None,
        "duration_ms": _int(data.get("duration_ms")) or None,
        "num_turns": _int(data.get("num_turns")) or None,
        "session_id": data.get("session_id"),
        "service_tier": usage.get("service_tier"),
    }


def merge_usage(parts: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    """Sum counters across several usage files; identity fields come from the first."""
    merged: Dict[str, Any] = {
        "input_tokens": 0,
        "output_tokens": 0,
        "cache_creation_tokens": 0,
        "cache_read_tokens": 0,
        "cost_usd": None,
        "duration_ms": None,
        "num_turns": None,
        "session_id": None,
        "service_tier": None,
    }
    for part in parts:
        for key in ("input_tokens", "output_tokens", "cache_creation_tokens", "cache_read_tokens"):
            merged[key] += part[key]
        for key in ("cost_usd", "duration_ms", "num_turns"):
            if part[key] is not None:
                merged[key] = (merged[key] or 0) + part[key]
        for key in ("session_id", "service_tier"):
            if merged[key] is None:
                merged[key] = part[key]
    return merged


class UsageTracker:
    """Writes one immutable usage record per sandbox invocation."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = UsageRepository(db)

    def record(
        self,
        job_type: str,
        project_id: Optional[str],
        files: Optional[Mapping[str, str]],
        success: bool,
        error_message: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        usage_files: Sequence[str] = DEFAULT_USAGE_FILES,
    ) -> Optional[UsageRecord]:
        """Persist the usage record for one attempt.

        Args:
            files: Output directory snapshot, or None when the sandbox never ran.
            usage_files: Usage files to read and merge, in order.

        Returns:
            The stored record, or None if the database rejected it (logged).
        """
        parts = []
        for name in usage_files:
            raw = (files or {}).get(name)
            if not raw:
                continue
            try:
                parts.append(parse_usage(raw))
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Ignoring unreadable usage file {name}: {e}")
        if files is not None and not parts:
            logger.info(f"No usage file for {job_type}; recording zeroed usage")

        counters = merge_usage(parts)
        record = UsageRecord(
            project_id=project_id,
            job_type=job_type,
            attempt_metadata=metadata or {},
            success=success,
            error_message=redact(error_message)[:ERROR_MESSAGE_LIMIT] if error_message else None,
            **counters,
        )
        try:
            return self.repo.add(record)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to record usage for {job_type}: {e}")
            return None
