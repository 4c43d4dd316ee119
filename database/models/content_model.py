# File: database/models/content_model.py
import enum
import uuid
from sqlalchemy import (
    Column, String, Integer, Text, JSON, DateTime, Enum, ForeignKey, UniqueConstraint, func
)
from database.db import Base


class ComplianceStatus(str, enum.Enum):
    PASS = "pass"
    WARN = "warn"
    BLOCK = "block"


class QueueSeverity(str, enum.Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class ContentPiece(Base):
    __tablename__ = "content_pieces"
    __table_args__ = (
        UniqueConstraint("client_id", "run_id", name="uq_content_client_run"),
    )

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    org_id = Column(String(255), nullable=False)
    client_id = Column(String(64), nullable=False, index=True)
    run_id = Column(String(64), nullable=False)

    title = Column(String(500), nullable=False)
    body_html = Column(Text, nullable=True)
    body_markdown = Column(Text, nullable=True)
    content_type = Column(String(32), nullable=False, default="blog_post")
    status = Column(String(32), nullable=False, default="in_review")

    target_keyword = Column(String(500), nullable=True)
    seo_score = Column(Integer, nullable=False, default=0)
    word_count = Column(Integer, nullable=False, default=0)
    compliance_status = Column(
        Enum(ComplianceStatus, values_callable=lambda x: [e.value for e in x]),
        default=ComplianceStatus.PASS,
        nullable=False,
    )
    compliance_details = Column(JSON, nullable=False, default=list)
    meta_title = Column(String(255), nullable=True)
    meta_description = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class QueueItem(Base):
    """
    Human approval record. Created here in `pending`; every later transition
    belongs to the approval subsystem.
    """
    __tablename__ = "queue_items"
    __table_args__ = (
        UniqueConstraint("client_id", "action_type", "natural_key", name="uq_queue_natural_key"),
    )

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    org_id = Column(String(255), nullable=False)
    client_id = Column(String(64), nullable=False, index=True)
    run_id = Column(String(64), nullable=False)

    agent = Column(String(32), nullable=False)
    action_type = Column(String(64), nullable=False)   # content_review | content_recommendation
    natural_key = Column(String(500), nullable=False)
    status = Column(String(32), nullable=False, default="pending")
    severity = Column(
        Enum(QueueSeverity, values_callable=lambda x: [e.value for e in x]),
        default=QueueSeverity.INFO,
        nullable=False,
    )
    description = Column(Text, nullable=False)
    proposed_data = Column(JSON, nullable=False, default=dict)

    content_piece_id = Column(String(64), ForeignKey("content_pieces.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
