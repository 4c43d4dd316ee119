# File: database/models/workflow_run_model.py
import enum
import uuid
from sqlalchemy import Column, String, JSON, Text, Boolean, DateTime, Enum, func
from database.db import Base


class AgentName(str, enum.Enum):
    SCHOLAR = "scholar"
    GHOSTWRITER = "ghostwriter"
    CONDUCTOR = "conductor"


class RunStatus(str, enum.Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RunTrigger(str, enum.Enum):
    MANUAL = "manual"
    SCHEDULED = "scheduled"
    ONBOARDING = "onboarding"


TERMINAL_STATUSES = {RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED}


class WorkflowRun(Base):
    __tablename__ = "workflow_runs"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    client_id = Column(String(64), nullable=False, index=True)
    org_id = Column(String(255), nullable=False, index=True)

    agent = Column(Enum(AgentName, values_callable=lambda x: [e.value for e in x]), nullable=False)
    graph_id = Column(String(64), nullable=True)
    status = Column(
        Enum(RunStatus, values_callable=lambda x: [e.value for e in x]),
        default=RunStatus.RUNNING,
        nullable=False,
        index=True,
    )
    trigger = Column(
        Enum(RunTrigger, values_callable=lambda x: [e.value for e in x]),
        default=RunTrigger.MANUAL,
        nullable=False,
    )

    # Inputs (e.g. the Ghostwriter topic) and the free-form result payload
    config = Column(JSON, nullable=False, default=dict)
    result = Column(JSON, nullable=False, default=dict)
    error = Column(Text, nullable=True)

    cancel_requested = Column(Boolean, nullable=False, default=False)

    # {"node": <last completed node>, "state": <serialized state bag>}
    checkpoint_data = Column(JSON, nullable=False, default=dict)

    started_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
