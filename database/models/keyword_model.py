# File: database/models/keyword_model.py
import uuid
from sqlalchemy import Column, String, Integer, Text, DateTime, UniqueConstraint, func
from database.db import Base


class Keyword(Base):
    __tablename__ = "keywords"
    __table_args__ = (
        UniqueConstraint("client_id", "keyword", name="uq_keyword_client"),
    )

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    org_id = Column(String(255), nullable=False)
    client_id = Column(String(64), nullable=False, index=True)
    keyword = Column(String(500), nullable=False)

    search_volume = Column(Integer, nullable=False, default=0)
    difficulty = Column(Integer, nullable=False, default=0)
    priority = Column(Integer, nullable=True)
    keyword_type = Column(String(32), nullable=False, default="target")
    source = Column(String(32), nullable=False, default="scholar")
    reasoning = Column(Text, nullable=True)

    last_run_id = Column(String(64), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
