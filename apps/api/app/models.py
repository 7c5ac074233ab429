from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from .db import Base


class SheetRow(Base):
    __tablename__ = "sheet_rows"
    __table_args__ = (Index("ix_sheet_rows_natural_key", "campaign_code", "start_date"),)

    id = Column(Integer, primary_key=True, index=True)
    campaign_code = Column(String(32), nullable=False)
    start_date = Column(Date, nullable=True)
    deadline = Column(Date, nullable=True)
    campaign_name = Column(String(255), default="", nullable=False)
    status = Column(String(64), default="", nullable=False)
    tactic = Column(String(128), default="", nullable=False)
    source_sheet = Column(String(128), default="", nullable=False)
    target_leads = Column(Integer, default=0, nullable=False)
    delivered_leads = Column(Integer, default=0, nullable=False)
    fields = Column(JSON, default=dict, nullable=False)
    synced_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class LeadReport(Base):
    __tablename__ = "lead_reports"
    __table_args__ = (UniqueConstraint("campaign_code", "report_date", name="uq_lead_report_key"),)

    id = Column(Integer, primary_key=True, index=True)
    campaign_code = Column(String(16), nullable=False, index=True)
    report_date = Column(Date, nullable=False, index=True)
    accepted_count = Column(Integer, default=0, nullable=False)
    rejected_count = Column(Integer, default=0, nullable=False)
    accepted_lead_ids = Column(JSON, default=list, nullable=False)
    rejected_lead_ids = Column(JSON, default=list, nullable=False)
    last_updated = Column(DateTime, default=datetime.utcnow, nullable=False)


class CampaignUpdate(Base):
    __tablename__ = "campaign_updates"
    __table_args__ = (Index("ix_campaign_updates_campaign_time", "campaign_id", "timestamp"),)

    id = Column(Integer, primary_key=True, index=True)
    campaign_id = Column(String(64), nullable=False, index=True)
    author_id = Column(String(64), nullable=True)
    author_name = Column(String(128), default="", nullable=False)
    message = Column(Text, default="", nullable=False)
    attachments = Column(JSON, default=list, nullable=False)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)
    edited = Column(Boolean, default=False, nullable=False)
    edited_at = Column(DateTime, nullable=True)


class SyncRun(Base):
    __tablename__ = "sync_runs"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String(32), nullable=False, index=True)
    strategy = Column(String(32), default="", nullable=False)
    result = Column(String(32), nullable=False)
    processed = Column(Integer, default=0, nullable=False)
    skipped = Column(Integer, default=0, nullable=False)
    errors = Column(Integer, default=0, nullable=False)
    fingerprint = Column(String(64), nullable=True)
    message = Column(String(255), nullable=True)
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    finished_at = Column(DateTime, nullable=True)
