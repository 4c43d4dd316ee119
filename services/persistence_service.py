# services/persistence_service.py
"""
Typed persistence functions used by workflow nodes.

Every write is an upsert on a natural key (client+keyword, client+run,
client+action+key) so retried or resumed runs never create duplicate rows.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from database.db import SessionLocal
from database.models.client_model import Client, AccountHealth
from database.models.keyword_model import Keyword
from database.models.content_model import ContentPiece, QueueItem, ComplianceStatus, QueueSeverity
from state.state_schema import ContentDraft, ComplianceVerdict, ContentTopic, PrioritizedKeyword
from utils.sanitization import clean_text

logger = logging.getLogger(__name__)


def normalize_keyword(keyword: str) -> str:
    return clean_text(keyword).lower()


def _client_to_dict(client: Client) -> Dict[str, Any]:
    return {
        "id": client.id,
        "org_id": client.org_id,
        "name": client.name,
        "domain": client.domain,
        "vertical": client.vertical,
        "practice_profile": dict(client.practice_profile or {}),
        "google_tokens": dict(client.google_tokens or {}),
        "competitors": list(client.competitors or []),
        "account_health": client.account_health.value,
    }


# ------------------------------------------------------------
# Clients
# ------------------------------------------------------------
def get_client(client_id: str) -> Optional[Dict[str, Any]]:
    with SessionLocal() as db:
        client = db.get(Client, client_id)
        return _client_to_dict(client) if client else None


def list_active_clients() -> List[Dict[str, Any]]:
    with SessionLocal() as db:
        rows = db.scalars(select(Client).where(Client.account_health == AccountHealth.ACTIVE)).all()
        return [_client_to_dict(c) for c in rows]


def update_client_tokens(client_id: str, tokens: Dict[str, Any]) -> None:
    with SessionLocal() as db:
        client = db.get(Client, client_id)
        if client is None:
            raise ValueError(f"Client not found: {client_id}")
        client.google_tokens = dict(tokens)
        db.commit()


# ------------------------------------------------------------
# Keywords
# ------------------------------------------------------------
def upsert_keywords(client_id: str, org_id: str, run_id: str, keywords: List[PrioritizedKeyword]) -> int:
    """Upserts keywords by (client, keyword). Returns the number of distinct keywords written."""
    seen = set()
    with SessionLocal() as db:
        for kw in keywords:
            key = normalize_keyword(kw.keyword)
            if not key or key in seen:
                continue
            seen.add(key)

            row = db.scalar(
                select(Keyword).where(Keyword.client_id == client_id).where(Keyword.keyword == key)
            )
            if row is None:
                row = Keyword(client_id=client_id, org_id=org_id, keyword=key)
                db.add(row)

            row.search_volume = kw.search_volume
            row.difficulty = kw.difficulty
            row.priority = kw.priority
            row.keyword_type = kw.keyword_type
            row.source = kw.source
            row.reasoning = kw.reasoning
            row.last_run_id = run_id

        db.commit()

    logger.info(f"💾 Upserted {len(seen)} keywords for client {client_id}")
    return len(seen)


def get_keywords_for_client(client_id: str) -> List[Dict[str, Any]]:
    with SessionLocal() as db:
        rows = db.scalars(
            select(Keyword).where(Keyword.client_id == client_id).order_by(Keyword.search_volume.desc())
        ).all()
        return [
            {
                "keyword": r.keyword,
                "search_volume": r.search_volume,
                "difficulty": r.difficulty,
                "priority": r.priority,
                "keyword_type": r.keyword_type,
                "source": r.source,
            }
            for r in rows
        ]


# ------------------------------------------------------------
# Queue items
# ------------------------------------------------------------
def _upsert_queue_item(
    db: Session,
    client_id: str,
    org_id: str,
    run_id: str,
    agent: str,
    action_type: str,
    natural_key: str,
    severity: str,
    description: str,
    proposed_data: Dict[str, Any],
    content_piece_id: Optional[str] = None,
) -> QueueItem:
    item = db.scalar(
        select(QueueItem)
        .where(QueueItem.client_id == client_id)
        .where(QueueItem.action_type == action_type)
        .where(QueueItem.natural_key == natural_key)
    )
    if item is None:
        item = QueueItem(
            client_id=client_id,
            org_id=org_id,
            action_type=action_type,
            natural_key=natural_key,
            status="pending",
        )
        db.add(item)

    item.run_id = run_id
    item.agent = agent
    item.severity = QueueSeverity(severity)
    item.description = description
    item.proposed_data = dict(proposed_data)
    item.content_piece_id = content_piece_id
    return item


def save_content_topics(client_id: str, org_id: str, run_id: str, topics: List[ContentTopic]) -> int:
    with SessionLocal() as db:
        for topic in topics:
            _upsert_queue_item(
                db,
                client_id=client_id,
                org_id=org_id,
                run_id=run_id,
                agent="scholar",
                action_type="content_recommendation",
                natural_key=f"{run_id}:{normalize_keyword(topic.keyword)}",
                severity="info",
                description=f"Content topic: {topic.suggested_title} ({topic.angle})" if topic.angle
                else f"Content topic: {topic.suggested_title}",
                proposed_data=topic.model_dump(),
            )
        db.commit()
    return len(topics)


def get_queue_item(queue_item_id: str) -> Optional[Dict[str, Any]]:
    with SessionLocal() as db:
        item = db.get(QueueItem, queue_item_id)
        if item is None:
            return None
        return {
            "id": item.id,
            "client_id": item.client_id,
            "run_id": item.run_id,
            "agent": item.agent,
            "action_type": item.action_type,
            "status": item.status,
            "severity": item.severity.value,
            "description": item.description,
            "proposed_data": dict(item.proposed_data or {}),
            "content_piece_id": item.content_piece_id,
        }


# ------------------------------------------------------------
# Content
# ------------------------------------------------------------
def upsert_content_piece(
    client_id: str,
    org_id: str,
    run_id: str,
    title: str,
    target_keyword: str,
    draft: ContentDraft,
    verdict: Optional[ComplianceVerdict],
) -> str:
    with SessionLocal() as db:
        piece = db.scalar(
            select(ContentPiece).where(ContentPiece.client_id == client_id).where(ContentPiece.run_id == run_id)
        )
        if piece is None:
            piece = ContentPiece(client_id=client_id, org_id=org_id, run_id=run_id)
            db.add(piece)

        piece.title = title
        piece.body_html = draft.body_html
        piece.body_markdown = draft.body_markdown
        piece.content_type = "blog_post"
        piece.status = "in_review"
        piece.target_keyword = target_keyword
        piece.seo_score = draft.seo_score
        piece.word_count = draft.word_count
        piece.meta_title = draft.meta_title
        piece.meta_description = draft.meta_description
        piece.compliance_status = ComplianceStatus(verdict.status if verdict else "pass")
        piece.compliance_details = [f.model_dump() for f in verdict.findings] if verdict else []

        db.commit()
        return piece.id


def create_review_queue_item(
    client_id: str,
    org_id: str,
    run_id: str,
    content_piece_id: str,
    severity: str,
    description: str,
    proposed_data: Dict[str, Any],
) -> str:
    with SessionLocal() as db:
        item = _upsert_queue_item(
            db,
            client_id=client_id,
            org_id=org_id,
            run_id=run_id,
            agent="ghostwriter",
            action_type="content_review",
            natural_key=content_piece_id,
            severity=severity,
            description=description,
            proposed_data=proposed_data,
            content_piece_id=content_piece_id,
        )
        db.commit()
        return item.id


def get_content_piece(content_piece_id: str) -> Optional[Dict[str, Any]]:
    with SessionLocal() as db:
        piece = db.get(ContentPiece, content_piece_id)
        if piece is None:
            return None
        return {
            "id": piece.id,
            "client_id": piece.client_id,
            "run_id": piece.run_id,
            "title": piece.title,
            "body_html": piece.body_html,
            "body_markdown": piece.body_markdown,
            "status": piece.status,
            "target_keyword": piece.target_keyword,
            "seo_score": piece.seo_score,
            "word_count": piece.word_count,
            "compliance_status": piece.compliance_status.value,
            "compliance_details": list(piece.compliance_details or []),
            "meta_title": piece.meta_title,
            "meta_description": piece.meta_description,
        }


def set_account_health(client_id: str, health: str) -> None:
    with SessionLocal() as db:
        client = db.get(Client, client_id)
        if client is None:
            raise ValueError(f"Client not found: {client_id}")
        client.account_health = AccountHealth(health)
        db.commit()
    logger.warning(f"⚠️ Client {client_id} account health set to {health}")
