# File: database/models/client_model.py
import enum
import uuid
from sqlalchemy import Column, String, JSON, DateTime, Enum, func
from database.db import Base


class AccountHealth(str, enum.Enum):
    ACTIVE = "active"
    DISCONNECTED = "disconnected"
    ERROR = "error"


class Client(Base):
    """
    A managed practice. Only the columns the agent workflows read are mapped;
    onboarding/CMS fields live with the external data-access layer.
    """
    __tablename__ = "clients"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    org_id = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    domain = Column(String(255), nullable=False)
    vertical = Column(String(64), nullable=False, default="dental")

    practice_profile = Column(JSON, nullable=False, default=dict)
    google_tokens = Column(JSON, nullable=False, default=dict)
    competitors = Column(JSON, nullable=False, default=list)   # [{"domain": ..., "name": ...}]

    account_health = Column(
        Enum(AccountHealth, values_callable=lambda x: [e.value for e in x]),
        default=AccountHealth.ACTIVE,
        nullable=False,
        index=True,
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
