# Overview: Transaction and fan-out helpers shared by every service.

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, TypeVar

from flask import current_app, has_app_context

from ..extensions import db

T = TypeVar("T")

# Upper bound on worker threads for a single fan-out
MAX_PARALLEL_FETCHES = 8


def lock_for_update(query):
    """
    Apply row-level locking for read-modify-write sequences.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_in_transaction(fn: Callable[[Any], T]) -> T:
    """
    Run fn(session) as one unit of work.

    - fn returns: commit, return its value
    - fn raises (anything, including KeyboardInterrupt): rollback, re-raise
    - commit raises: best-effort rollback (logged if it fails too), raise
      the commit error

    fn must issue every statement through the session it is given.
    Nested calls are not supported.
    """
    session = db.session
    try:
        result = fn(session)
    except BaseException:
        session.rollback()
        raise

    try:
        session.commit()
    except BaseException:
        try:
            session.rollback()
        except Exception:
            current_app.logger.exception("Rollback after failed commit also failed")
        raise

    return result


def fetch_all(*calls: Callable[[], Any]) -> list:
    """
    Run independent zero-argument fetches concurrently and join them.

    Each worker runs inside its own app context, so it gets its own
    database session and pooled connection. All calls are awaited before
    anything is inspected. Results come back in declared order; if any call
    failed, the first failure in declared order is raised and the rest are
    dropped. Completion order never matters.
    """
    if not calls:
        return []
    if len(calls) == 1:
        return [calls[0]()]

    app = current_app._get_current_object() if has_app_context() else None

    def _run(call: Callable[[], Any]):
        if app is None:
            return call()
        with app.app_context():
            return call()

    with ThreadPoolExecutor(max_workers=min(len(calls), MAX_PARALLEL_FETCHES)) as pool:
        futures = [pool.submit(_run, call) for call in calls]

    # Leaving the with-block waits for every worker, so inspection below
    # never races a running fetch.
    results = []
    for future in futures:
        exc = future.exception()
        if exc is not None:
            raise exc
        results.append(future.result())
    return results
