from __future__ import annotations

from contextlib import contextmanager
import logging
from typing import Iterator

from sqlalchemy import exc as sa_exc

from attendme.core.exceptions import AppError, NetworkError, RemoteTimeoutError, UnknownError

logger = logging.getLogger(__name__)


# SQLSTATE classes for a lost or refused connection, and server shutdown.
_CONNECTION_SQLSTATES = ("08", "57P01", "57P02", "57P03")
# Drivers without SQLSTATEs (sqlite, connect-time psycopg failures) only say so in the message.
_CONNECTION_MARKERS = (
    "could not connect",
    "connection refused",
    "connection reset",
    "connection timed out",
    "connection failed",
    "connection is closed",
    "server closed the connection",
    "terminating connection",
    "network is unreachable",
    "could not translate host name",
    "unable to open database file",
)


def _is_connection_issue(exc: Exception) -> bool:
    if isinstance(exc, sa_exc.DBAPIError):
        if exc.connection_invalidated:
            return True
        if not isinstance(exc, (sa_exc.OperationalError, sa_exc.InterfaceError)):
            return False
        sqlstate = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
        if sqlstate:
            return str(sqlstate).startswith(_CONNECTION_SQLSTATES)
        message = str(exc.orig).lower()
        return any(marker in message for marker in _CONNECTION_MARKERS)
    return isinstance(exc, (sa_exc.DisconnectionError, ConnectionError, OSError))


@contextmanager
def remote_call(operation: str) -> Iterator[None]:
    """Translate store driver failures into the application error taxonomy."""
    try:
        yield
    except AppError:
        raise
    except (sa_exc.TimeoutError, TimeoutError) as exc:
        logger.warning("Remote store timed out during %s", operation)
        raise RemoteTimeoutError(f"Timed out during {operation}") from exc
    except Exception as exc:
        if _is_connection_issue(exc):
            logger.warning("Remote store unreachable during %s: %s", operation, exc)
            raise NetworkError(f"Remote store unreachable during {operation}") from exc
        if isinstance(exc, sa_exc.SQLAlchemyError):
            logger.exception("Remote store failure during %s", operation)
            raise UnknownError(f"Remote store failure during {operation}") from exc
        raise
