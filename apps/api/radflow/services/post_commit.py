"""Non-critical effects that run after the primary transaction commits.

Each effect gets its own transaction, time budget and error boundary.
A failing effect is logged and never fails the operation that queued it.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from sqlalchemy.orm import Session

from radflow.db.transaction import apply_statement_timeout

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PostCommitEffect:
    name: str
    apply: Callable[[Session], None]
    timeout_seconds: float


def run_post_commit_effects(db: Session, effects: list[PostCommitEffect]) -> list[str]:
    """Run effects in order; returns the names of the ones that failed."""
    failed: list[str] = []
    for effect in effects:
        started = time.monotonic()
        try:
            apply_statement_timeout(db, effect.timeout_seconds)
            effect.apply(db)
            db.commit()
        except Exception:
            db.rollback()
            failed.append(effect.name)
            logger.warning("Post-commit effect %s failed", effect.name, exc_info=True)
            continue

        elapsed = time.monotonic() - started
        if elapsed > effect.timeout_seconds:
            logger.warning(
                "Post-commit effect %s took %.2fs (budget %.2fs)",
                effect.name,
                elapsed,
                effect.timeout_seconds,
            )
    return failed
