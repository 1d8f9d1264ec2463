import hashlib
import json
from datetime import datetime

from fastapi import Request
from sqlalchemy.orm import Session

from services.screening import models


HASHED_FIELDS = ("actor_user_id", "action", "entity_type", "entity_id", "ip", "device_id")


def _canonical(obj) -> str:
    return json.dumps(obj, separators=(",", ":"), sort_keys=True, ensure_ascii=False)


def compute_entry_hash(*, prev_hash: str | None, ts: datetime, **fields) -> str:
    payload = {name: fields.get(name) for name in HASHED_FIELDS}
    payload["prev_hash"] = prev_hash
    payload["ts"] = ts.isoformat()
    return hashlib.sha256(_canonical(payload).encode("utf-8")).hexdigest()


def _request_origin(request: Request | None, device_id: str | None) -> tuple[str | None, str | None]:
    if request is None:
        return None, device_id
    ip = request.client.host if request.client is not None else None
    return ip, device_id or request.headers.get("X-Device-Id")


def write_audit(
    *,
    db: Session,
    request: Request | None,
    actor_user_id: str | None,
    action: str,
    entity_type: str,
    entity_id: str | None,
    device_id: str | None = None,
) -> models.AuditLog:
    """Append an entry chained to the previous one. Rows are never updated."""
    last = db.query(models.AuditLog).order_by(models.AuditLog.ts.desc()).first()
    prev_hash = last.entry_hash if last else None
    ip, device_id = _request_origin(request, device_id)

    fields = {
        "actor_user_id": actor_user_id,
        "action": action,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "ip": ip,
        "device_id": device_id,
    }
    ts = datetime.utcnow()
    row = models.AuditLog(
        **fields,
        ts=ts,
        prev_hash=prev_hash,
        entry_hash=compute_entry_hash(prev_hash=prev_hash, ts=ts, **fields),
    )
    db.add(row)
    return row


def verify_audit_chain(db: Session) -> bool:
    prev = None
    for row in db.query(models.AuditLog).order_by(models.AuditLog.ts.asc()).all():
        fields = {name: getattr(row, name) for name in HASHED_FIELDS}
        if compute_entry_hash(prev_hash=prev, ts=row.ts, **fields) != row.entry_hash:
            return False
        prev = row.entry_hash
    return True
