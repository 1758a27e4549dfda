"""Usage record repository: inserts and cost reporting."""

from typing import Any, Dict, List, Optional

from sqlalchemy import func

from ..models import UsageRecord


class UsageRepository:
    """Append-only access to usage records. There is no update method."""

    def __init__(self, db):
        self.db = db

    def add(self, record: UsageRecord) -> UsageRecord:
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record

    def list_for_project(self, project_id: str, limit: int = 100) -> List[UsageRecord]:
        return (
            self.db.query(UsageRecord)
            .filter(UsageRecord.project_id == project_id)
            .order_by(UsageRecord.created_at.desc())
            .limit(limit)
            .all()
        )

    def totals(self, project_id: Optional[str] = None) -> Dict[str, Any]:
        """Cost and token totals, overall and grouped by job type."""
        query = self.db.query(
            UsageRecord.job_type,
            func.count(UsageRecord.id),
            func.coalesce(func.sum(UsageRecord.cost_usd), 0.0),
            func.coalesce(func.sum(UsageRecord.input_tokens), 0),
            func.coalesce(func.sum(UsageRecord.output_tokens), 0),
            func.coalesce(func.sum(UsageRecord.cache_creation_tokens), 0),
            func.coalesce(func.sum(UsageRecord.cache_read_tokens), 0),
        )
        if project_id:
            query = query.filter(UsageRecord.project_id == project_id)

        by_job_type = {}
        for job_type, count, cost, inp, out, cache_create, cache_read in query.group_by(UsageRecord.job_type).all():
            by_job_type[job_type] = {
                "invocations": count,
                "cost_usd": round(float(cost), 6),
                "input_tokens": int(inp),
                "output_tokens": int(out),
                "cache_creation_tokens": int(cache_create),
                "cache_read_tokens": int(cache_read),
            }

        return {
            "invocations": sum(v["invocations"] for v in by_job_type.values()),
            "cost_usd": round(sum(v["cost_usd"] for v in by_job_type.values()), 6),
            "input_tokens": sum(v["input_tokens"] for v in by_job_type.values()),
            "output_tokens": sum(v["output_tokens"] for v in by_job_type.values()),
            "by_job_type": by_job_type,
        }
