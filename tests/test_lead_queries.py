from datetime import date, datetime

import pytest
from fastapi import HTTPException
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from apps.api.app.db import Base
from apps.api.app.lead_queries import (
    accepted_count_batch,
    delivered_breakdown,
    is_real_date_bound,
    lead_counts,
    lead_stats,
)
from apps.api.app.models import LeadReport
from apps.api.app.routes import leads as lead_routes
from apps.api.app.schemas import AcceptedCountBatchRequest


def _build_db_session():
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    session_cls = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return session_cls()


def _seed(db):
    db.add_all(
        [
            LeadReport(
                campaign_code="1234",
                report_date=date(2024, 3, 15),
                accepted_count=2,
                rejected_count=1,
                accepted_lead_ids=["L1", "L2"],
                rejected_lead_ids=["L3"],
                last_updated=datetime(2024, 3, 16, 9, 0),
            ),
            LeadReport(
                campaign_code="1234",
                report_date=date(2024, 3, 10),
                accepted_count=3,
                rejected_count=0,
                accepted_lead_ids=["L4", "L5", "L6"],
                rejected_lead_ids=[],
                last_updated=datetime(2024, 3, 11, 9, 0),
            ),
            LeadReport(
                campaign_code="5555",
                report_date=date(2024, 4, 1),
                accepted_count=1,
                rejected_count=0,
                accepted_lead_ids=["P1"],
                rejected_lead_ids=[],
                last_updated=datetime(2024, 4, 2, 9, 0),
            ),
        ]
    )
    db.commit()


def test_lead_counts_sum_accepted_per_code():
    db = _build_db_session()
    _seed(db)

    counts = lead_counts(db)

    assert counts["1234"] == {"count": 5, "last_updated": "2024-03-16T09:00:00"}
    assert counts["5555"]["count"] == 1
    assert lead_counts(db, start=date(2024, 3, 12))["1234"]["count"] == 2


def test_lead_stats_for_one_code():
    db = _build_db_session()
    _seed(db)

    stats = lead_stats(db, "1234")

    assert stats["total_accepted"] == 5
    assert stats["total_rejected"] == 1
    assert stats["first_report_date"] == "2024-03-10"
    assert stats["last_report_date"] == "2024-03-15"


def test_lead_stats_for_unknown_code_is_zeroed():
    db = _build_db_session()

    stats = lead_stats(db, "9999")

    assert stats["total_accepted"] == 0
    assert stats["first_report_date"] is None


def test_batch_counts_zero_fill_and_ignore_placeholder_bounds():
    db = _build_db_session()
    _seed(db)

    assert accepted_count_batch(db, ["1234", "5555", "0000"]) == {"1234": 5, "5555": 1, "0000": 0}
    assert accepted_count_batch(db, ["1234"], "1970-01-01", "2024-03-12") == {"1234": 5}
    assert accepted_count_batch(db, ["1234"], "2024-3", "2024-03-12") == {"1234": 5}
    assert accepted_count_batch(db, ["1234"], "2024-03-01", "2024-03-12") == {"1234": 3}


def test_real_date_bound_predicate():
    assert is_real_date_bound("2024-03-01") is True
    assert is_real_date_bound("1970-01-01") is False
    assert is_real_date_bound("") is False
    assert is_real_date_bound(None) is False
    assert is_real_date_bound(20240301) is False


def test_delivered_breakdown_is_ordered_by_day():
    db = _build_db_session()
    _seed(db)

    result = delivered_breakdown(db, "1234")

    assert result["delivered"] == 5
    assert result["rejected"] == 1
    assert [item["date"] for item in result["daily"]] == ["2024-03-10", "2024-03-15"]


def test_batch_route_requires_codes():
    db = _build_db_session()

    with pytest.raises(HTTPException) as exc_info:
        lead_routes.get_accepted_count_batch(AcceptedCountBatchRequest(itlCodes=[]), db)

    assert exc_info.value.status_code == 400


def test_stats_route_accepts_prefixed_codes():
    db = _build_db_session()
    _seed(db)

    stats = lead_routes.get_lead_stats("ITL-1234", start=None, end=None, db=db)

    assert stats["campaign_code"] == "1234"
    assert stats["total_accepted"] == 5
