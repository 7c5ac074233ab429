from __future__ import annotations

from datetime import date

from sqlalchemy import func
from sqlalchemy.orm import Query, Session

from .engine.dates import EPOCH_ANCHOR, normalize_date
from .models import LeadReport


def _date_filtered(query: Query, start: date | None, end: date | None) -> Query:
    if start is not None:
        query = query.filter(LeadReport.report_date >= start)
    if end is not None:
        query = query.filter(LeadReport.report_date <= end)
    return query


def is_real_date_bound(value: object) -> bool:
    """Batch counters ignore empty, short and epoch-anchor bounds."""
    if not isinstance(value, str):
        return False
    text = value.strip()
    return len(text) >= 8 and text != EPOCH_ANCHOR.isoformat()


def lead_counts(db: Session, start: date | None = None, end: date | None = None) -> dict[str, dict]:
    query = db.query(
        LeadReport.campaign_code,
        func.coalesce(func.sum(LeadReport.accepted_count), 0),
        func.max(LeadReport.last_updated),
    )
    rows = _date_filtered(query, start, end).group_by(LeadReport.campaign_code).all()
    return {
        code: {
            "count": int(total or 0),
            "last_updated": last_updated.isoformat() if last_updated else None,
        }
        for code, total, last_updated in rows
    }


def lead_stats(db: Session, code: str, start: date | None = None, end: date | None = None) -> dict:
    query = db.query(
        func.coalesce(func.sum(LeadReport.accepted_count), 0),
        func.coalesce(func.sum(LeadReport.rejected_count), 0),
        func.min(LeadReport.report_date),
        func.max(LeadReport.report_date),
        func.max(LeadReport.last_updated),
    ).filter(LeadReport.campaign_code == code)
    accepted, rejected, first_day, last_day, last_updated = _date_filtered(query, start, end).one()
    return {
        "campaign_code": code,
        "total_accepted": int(accepted or 0),
        "total_rejected": int(rejected or 0),
        "first_report_date": first_day.isoformat() if first_day else None,
        "last_report_date": last_day.isoformat() if last_day else None,
        "last_updated": last_updated.isoformat() if last_updated else None,
    }


def accepted_count_batch(db: Session, codes: list[str], start: object = None, end: object = None) -> dict[str, int]:
    """Accepted totals for each requested code, zero when nothing is stored."""
    wanted = [str(code).strip() for code in codes if str(code).strip()]
    query = db.query(
        LeadReport.campaign_code,
        func.coalesce(func.sum(LeadReport.accepted_count), 0),
    ).filter(LeadReport.campaign_code.in_(wanted))

    if is_real_date_bound(start) and is_real_date_bound(end):
        start_day = normalize_date(start)
        end_day = normalize_date(end)
        if start_day is not None and end_day is not None:
            query = _date_filtered(query, start_day, end_day)

    counts = {code: int(total or 0) for code, total in query.group_by(LeadReport.campaign_code).all()}
    for code in wanted:
        counts.setdefault(code, 0)
    return counts


def delivered_breakdown(db: Session, code: str, start: date | None = None, end: date | None = None) -> dict:
    query = db.query(LeadReport).filter(LeadReport.campaign_code == code)
    reports = _date_filtered(query, start, end).order_by(LeadReport.report_date.asc()).all()
    daily = [
        {
            "date": report.report_date.isoformat(),
            "accepted": int(report.accepted_count or 0),
            "rejected": int(report.rejected_count or 0),
        }
        for report in reports
    ]
    return {
        "campaign_code": code,
        "delivered": sum(item["accepted"] for item in daily),
        "rejected": sum(item["rejected"] for item in daily),
        "daily": daily,
    }
