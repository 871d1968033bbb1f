"""
wms/store.py

Whole-document JSON store keyed by logical name ("monuments", "projects").

Contract:
- read_document(name) returns the full document (or an empty default)
- write_document(name, document, ...) replaces the full document
- callers mutate in memory between the two

Hardening:
- Each document row carries a version. Writes are compare-and-swap on that
  version, so a write based on a stale read raises ConflictError instead of
  silently clobbering a concurrent update.
- mutate() runs read -> fn -> write as one unit under a per-document lock and
  re-runs the unit on conflict (DOCUMENT_WRITE_RETRIES attempts).
- Database failures are rolled back and surface as PersistenceError; the
  stored document is never partially updated.
"""

from __future__ import annotations

import copy
import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Tuple, TypeVar

from flask import current_app
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .errors import ConflictError, PersistenceError
from .extensions import db
from .models import Document

logger = logging.getLogger(__name__)

T = TypeVar("T")

_locks: Dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()


def _document_lock(name: str) -> threading.Lock:
    with _locks_guard:
        lock = _locks.get(name)
        if lock is None:
            lock = _locks[name] = threading.Lock()
        return lock


def empty_document(name: str) -> Dict[str, Any]:
    return {name: []}


def read_document(name: str) -> Tuple[Dict[str, Any], int]:
    """
    Return (document, version). A document that was never written reads as
    the empty default with version 0.
    """
    try:
        row = db.session.execute(
            select(Document.body, Document.version).where(Document.name == name)
        ).first()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Reading document %s failed", name, exc_info=True)
        raise PersistenceError(f"Could not read {name}.") from exc

    if row is None:
        return empty_document(name), 0

    body = row.body if isinstance(row.body, dict) else {}
    if not isinstance(body.get(name), list):
        body[name] = []
    return body, row.version


def write_document(name: str, document: Dict[str, Any], expected_version: int) -> int:
    """
    Replace the stored document if its version is still expected_version.

    Returns the new version. Raises ConflictError when another writer got
    there first and PersistenceError on any database failure.
    """
    new_version = expected_version + 1
    try:
        if expected_version == 0:
            db.session.add(Document(name=name, body=document, version=new_version))
            db.session.flush()
        else:
            result = db.session.execute(
                update(Document)
                .where(Document.name == name, Document.version == expected_version)
                .values(body=document, version=new_version, updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                db.session.rollback()
                raise ConflictError(
                    f"{name} was modified by another request. Please retry.",
                    details={"document": name, "expectedVersion": expected_version},
                )
        db.session.commit()
    except IntegrityError as exc:
        # Two first-writers raced to create the row.
        db.session.rollback()
        raise ConflictError(
            f"{name} was created by another request. Please retry.",
            details={"document": name, "expectedVersion": expected_version},
        ) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Writing document %s failed", name, exc_info=True)
        raise PersistenceError(f"Could not save {name}.") from exc

    logger.debug("Document %s written at version %s", name, new_version)
    return new_version


def mutate(name: str, fn: Callable[[Dict[str, Any]], T], *, retries: int | None = None) -> T:
    """
    Read the document, apply fn to it in place and write it back.

    fn may raise any WMSError to abort; nothing is written in that case.
    When fn leaves the document unchanged no write happens either.
    """
    if retries is None:
        retries = current_app.config.get("DOCUMENT_WRITE_RETRIES", 3)
    attempts = max(1, int(retries))

    with _document_lock(name):
        for attempt in range(1, attempts + 1):
            document, version = read_document(name)
            snapshot = copy.deepcopy(document)

            result = fn(document)

            if document == snapshot:
                return result
            try:
                write_document(name, document, version)
            except ConflictError:
                logger.warning(
                    "Version conflict on %s (attempt %s/%s)",
                    name,
                    attempt,
                    attempts,
                    extra={"document": name, "attempt": attempt},
                )
                if attempt == attempts:
                    raise
                continue
            return result

    raise ConflictError(f"{name} could not be saved.")  # pragma: no cover
