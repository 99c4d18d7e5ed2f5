import pytest
from sqlalchemy import create_engine
from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from attendme.core.exceptions import (
    AppError,
    ConflictError,
    NetworkError,
    NotFoundError,
    RemoteTimeoutError,
    UnknownError,
    ValidationError,
)
from attendme.db.errors import remote_call
from attendme.services.permissions import PermissionManager


def _raise_inside(error):
    with remote_call("test operation"):
        raise error


def test_connection_failures_become_network_errors():
    with pytest.raises(NetworkError) as exc_info:
        _raise_inside(sa_exc.OperationalError("SELECT 1", {}, Exception("could not connect")))
    assert exc_info.value.retryable
    assert exc_info.value.status_code == 503

    with pytest.raises(NetworkError):
        _raise_inside(ConnectionRefusedError("refused"))


class _DriverError(Exception):
    def __init__(self, message, sqlstate=None):
        super().__init__(message)
        self.sqlstate = sqlstate


def test_operational_errors_that_are_not_connection_failures_are_unknown():
    with pytest.raises(UnknownError) as exc_info:
        _raise_inside(sa_exc.OperationalError("SELECT * FROM x", {}, Exception("no such table: x")))
    assert not exc_info.value.retryable

    with pytest.raises(UnknownError):
        _raise_inside(sa_exc.OperationalError("UPDATE x", {}, _DriverError("deadlock detected", "40P01")))


def test_connection_failures_are_recognised_by_sqlstate_or_invalidation():
    with pytest.raises(NetworkError):
        _raise_inside(sa_exc.OperationalError("SELECT 1", {}, _DriverError("server went away", "08006")))
    with pytest.raises(NetworkError):
        _raise_inside(sa_exc.InterfaceError("SELECT 1", {}, _DriverError("admin shutdown", "57P01")))
    with pytest.raises(NetworkError):
        _raise_inside(
            sa_exc.DBAPIError("SELECT 1", {}, Exception("ssl error"), connection_invalidated=True)
        )


def test_timeouts_become_remote_timeout_errors():
    with pytest.raises(RemoteTimeoutError) as exc_info:
        _raise_inside(sa_exc.TimeoutError("QueuePool limit reached"))
    assert exc_info.value.retryable
    assert exc_info.value.status_code == 504
    assert isinstance(exc_info.value, NetworkError)


def test_other_store_errors_become_unknown_errors():
    with pytest.raises(UnknownError) as exc_info:
        _raise_inside(sa_exc.IntegrityError("INSERT", {}, Exception("duplicate key")))
    assert not exc_info.value.retryable
    assert exc_info.value.status_code == 500


def test_application_errors_pass_through():
    with pytest.raises(ConflictError):
        _raise_inside(ConflictError("overlap", kind="overlap"))
    with pytest.raises(ValueError):
        _raise_inside(ValueError("programming error"))


def test_error_details():
    conflict = ConflictError("overlap", kind="overlap", details={"student_id": "S1"})
    assert conflict.details == {"kind": "overlap", "student_id": "S1"}
    assert isinstance(conflict, AppError)

    missing = NotFoundError("Request", "r-1")
    assert missing.message == "Request with id r-1 not found"
    assert missing.status_code == 404

    assert ValidationError("bad input").details == {}
    assert NetworkError(details=None).details == {}


def test_missing_table_on_a_live_store_is_not_retryable():
    engine = create_engine("sqlite+pysqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    manager = PermissionManager(sessionmaker(bind=engine, expire_on_commit=False))

    with pytest.raises(UnknownError) as exc_info:
        manager.list_for_student("S1")

    assert not exc_info.value.retryable
    assert isinstance(exc_info.value.__cause__, sa_exc.OperationalError)
    engine.dispose()
