# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Transaction Management

Every catalog and queue write is one short, named transaction:

    from core.session_manager import session_scope

    with session_scope("mark_repo_scanned") as session:
        session.execute(update(DiscoveredRepository)...)

The session commits when the block exits cleanly, rolls back when it raises
(the exception propagates), and is always closed.
"""

import logging
import time
from contextlib import contextmanager
from typing import Callable, Generator, Optional

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

SLOW_TRANSACTION_MS = 2000


@contextmanager
def session_scope(name: str, session_factory: Optional[Callable[[], Session]] = None) -> Generator[Session, None, None]:
    """
    Open a session for one named transaction.

    Args:
        name: Transaction name used in log lines
        session_factory: Session factory (defaults to db.database.SessionLocal)
    """
    if session_factory is None:
        from db.database import SessionLocal
        session_factory = SessionLocal

    session = session_factory()
    started = time.perf_counter()
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.warning(
            f"Transaction {name} rolled back: {type(e).__name__}: {e}",
            extra={"transaction_name": name}
        )
        raise
    finally:
        session.close()

    elapsed_ms = (time.perf_counter() - started) * 1000
    if elapsed_ms > SLOW_TRANSACTION_MS:
        logger.warning(f"Slow transaction {name}: {elapsed_ms:.0f}ms")
    else:
        logger.debug(f"Transaction {name} committed ({elapsed_ms:.1f}ms)")


__all__ = ["session_scope"]
