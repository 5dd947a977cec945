# Overview: Service-layer operations for the code inventory; ingestion, allocation, reconciliation.

"""
Code Inventory Service

WHY: Codes are the actual goods being sold. Each code string exists once in
the whole store and is consumed exactly once.

INVARIANTS:
- Code.code is globally unique (DB constraint + ingestion partitioning)
- App.codes_available == number of unused codes for the app
- A code only goes unused -> used, inside allocate_codes

Ingestion partitions an incoming batch into three buckets:
- duplicates: repeated occurrences inside the batch itself
- system_duplicates: strings already stored (for any app, any seller)
- valid_codes: everything else; these are persisted
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, Iterable

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import App, Code
from ..validation import ConflictError, ValidationError
from recargas.time_utils import utcnow
from .errors import InsufficientInventoryError
from .ownership_service import require_seller, require_owned

# SQLite caps bound parameters per statement; stay well below it
LOOKUP_CHUNK_SIZE = 500

MAX_CODE_LENGTH = 255

_BATCH_SEPARATORS = re.compile(r"[\r\n,;]+")


@dataclass
class CodeIngestResult:
    valid_codes: list[str] = field(default_factory=list)
    duplicates: list[str] = field(default_factory=list)
    system_duplicates: list[str] = field(default_factory=list)
    created: list[Code] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid_codes": self.valid_codes,
            "duplicates": self.duplicates,
            "system_duplicates": self.system_duplicates,
        }


def parse_code_batch(text: str) -> list[str]:
    """Split pasted text (one code per line, or comma/semicolon separated)."""
    return [part.strip() for part in _BATCH_SEPARATORS.split(text or "") if part.strip()]


def _chunks(values: list, size: int) -> Iterable[list]:
    for start in range(0, len(values), size):
        yield values[start:start + size]


def _existing_codes(candidates: list[str]) -> set[str]:
    existing: set[str] = set()
    for chunk in _chunks(candidates, LOOKUP_CHUNK_SIZE):
        rows = db.session.query(Code.code).filter(Code.code.in_(chunk)).all()
        existing.update(r[0] for r in rows)
    return existing


def partition_codes(raw_codes: list[str]) -> CodeIngestResult:
    """
    Split a batch into valid / duplicates / system_duplicates.

    Every input entry lands in exactly one bucket. The first occurrence of a
    string decides between valid and system_duplicates; later occurrences are
    duplicates.
    """
    result = CodeIngestResult()
    seen: set[str] = set()
    candidates: list[str] = []

    for raw in raw_codes:
        if not isinstance(raw, str):
            raise ValidationError("codes must be strings")
        code = raw.strip()
        if not code:
            raise ValidationError("codes cannot be blank")
        if len(code) > MAX_CODE_LENGTH:
            raise ValidationError(f"code exceeds max length {MAX_CODE_LENGTH}")
        if code in seen:
            result.duplicates.append(code)
            continue
        seen.add(code)
        candidates.append(code)

    existing = _existing_codes(candidates)
    for code in candidates:
        if code in existing:
            result.system_duplicates.append(code)
        else:
            result.valid_codes.append(code)

    return result


def add_codes(
    seller_id: int,
    app_id: int,
    raw_codes: list[str],
    on_progress: Callable[[int], None] | None = None,
    chunk_size: int | None = None,
) -> CodeIngestResult:
    """
    Ingest a batch of codes for an app.

    Only valid_codes are inserted, and codes_available grows by exactly that
    many. Resubmitting the same batch inserts nothing.

    Args:
        on_progress: called with a 0-100 percentage after each inserted chunk

    Raises:
        NotFoundError: app missing or owned by another seller
        ValidationError: malformed batch
        ConflictError: a concurrent ingestion stored some of these codes first
    """
    app = require_owned(App, app_id, seller_id, "App")

    if not isinstance(raw_codes, list):
        raise ValidationError("codes must be a list")

    result = partition_codes(raw_codes)
    chunk_size = chunk_size or current_app.config.get("CODE_INGEST_CHUNK_SIZE", 100)

    total = len(result.valid_codes)
    inserted = 0
    try:
        for chunk in _chunks(result.valid_codes, chunk_size):
            rows = [Code(app_id=app.id, code=code, used=False) for code in chunk]
            db.session.add_all(rows)
            db.session.flush()
            result.created.extend(rows)
            inserted += len(rows)
            if on_progress:
                on_progress(int(inserted * 100 / total))

        app.codes_available = app.codes_available + inserted
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Some codes were stored concurrently; resubmit the batch")

    if on_progress and total == 0:
        on_progress(100)

    current_app.logger.info(
        "Codes ingested app_id=%s valid=%s duplicates=%s system_duplicates=%s",
        app.id, len(result.valid_codes), len(result.duplicates), len(result.system_duplicates),
    )
    return result


def count_unused(app_id: int) -> int:
    return (
        db.session.query(func.count(Code.id))
        .filter(Code.app_id == app_id, Code.used.is_(False))
        .scalar()
    ) or 0


def allocate_codes(app: App, quantity: int) -> list[Code]:
    """
    Reserve `quantity` unused codes of `app` and mark them used.

    Runs inside the caller's transaction and does not commit. Selection is
    oldest-first (ascending id). The mark-used UPDATE is conditional on
    used = false, so its rowcount proves no other writer took any of the
    selected codes; anything short of `quantity` raises and the caller rolls
    back.

    Raises InsufficientInventoryError with app_id / requested / available.
    """
    candidate_ids = [
        row[0]
        for row in db.session.query(Code.id)
        .filter(Code.app_id == app.id, Code.used.is_(False))
        .order_by(Code.id.asc())
        .limit(quantity)
        .with_for_update()
        .all()
    ]

    if len(candidate_ids) < quantity:
        raise InsufficientInventoryError(
            f"Insufficient codes for app {app.name}",
            details={"app_id": app.id, "requested": quantity, "available": len(candidate_ids)},
        )

    now = utcnow()
    updated = (
        db.session.query(Code)
        .filter(Code.id.in_(candidate_ids), Code.used.is_(False))
        .update({Code.used: True, Code.used_at: now}, synchronize_session=False)
    )
    if updated != quantity:
        raise InsufficientInventoryError(
            f"Insufficient codes for app {app.name}",
            details={"app_id": app.id, "requested": quantity, "available": updated},
        )

    codes = (
        db.session.query(Code)
        .filter(Code.id.in_(candidate_ids))
        .order_by(Code.id.asc())
        .populate_existing()
        .all()
    )

    app.codes_available = count_unused(app.id)
    return codes


def list_codes(seller_id: int, app_id: int | None = None, used: bool | None = None) -> list[Code]:
    require_seller(seller_id)
    query = (
        db.session.query(Code)
        .join(App, App.id == Code.app_id)
        .filter(App.seller_id == seller_id)
    )
    if app_id is not None:
        require_owned(App, app_id, seller_id, "App")
        query = query.filter(Code.app_id == app_id)
    if used is not None:
        query = query.filter(Code.used.is_(used))
    return query.order_by(Code.id.asc()).all()


def reconcile_codes_available(seller_id: int | None = None) -> list[dict]:
    """
    Recompute every app's codes_available from the code rows.

    Returns one entry per corrected app: {app_id, before, after}.
    seller_id=None reconciles all sellers (CLI maintenance).
    """
    counts = dict(
        db.session.query(Code.app_id, func.count(Code.id))
        .filter(Code.used.is_(False))
        .group_by(Code.app_id)
        .all()
    )

    query = db.session.query(App)
    if seller_id is not None:
        query = query.filter(App.seller_id == seller_id)

    corrections = []
    for app in query.order_by(App.id.asc()).all():
        actual = counts.get(app.id, 0)
        if app.codes_available != actual:
            corrections.append({"app_id": app.id, "before": app.codes_available, "after": actual})
            app.codes_available = actual

    if corrections:
        current_app.logger.warning("Reconciled codes_available for %s app(s)", len(corrections))
    db.session.commit()
    return corrections
