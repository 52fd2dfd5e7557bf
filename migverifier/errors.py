"""Classification of server and driver errors."""

from __future__ import annotations

import asyncio
import concurrent.futures
import socket
from typing import Any, Mapping, Optional

from pymongo.errors import (
    BulkWriteError,
    ConnectionFailure,
    DuplicateKeyError,
    OperationFailure,
    PyMongoError,
)

LOCK_FAILED = 107
SAMPLE_TOO_MANY_DUPLICATES = 28799
CURSOR_KILLED = 237

_DUPLICATE_KEY_CODES = frozenset({11000, 11001, 12582})

TRANSIENT_ERROR_CODES = frozenset(
    {
        6,  # HostUnreachable
        7,  # HostNotFound
        43,  # CursorNotFound
        50,  # MaxTimeMSExpired
        63,  # OBSOLETE_StaleShardVersion
        64,  # WriteConcernFailed
        70,  # ShardNotFound
        89,  # NetworkTimeout
        90,  # CallbackCanceled
        91,  # ShutdownInProgress
        112,  # WriteConflict
        117,  # ConflictingOperationInProgress
        133,  # FailedToSatisfyReadPreference
        134,  # ReadConcernMajorityNotAvailableYet
        136,  # CappedPositionLost
        175,  # QueryPlanKilled
        187,  # LinearizableReadConcernError
        189,  # PrimarySteppedDown
        202,  # NetworkInterfaceExceededTimeLimit
        211,  # KeyNotFound
        251,  # NoSuchTransaction
        262,  # ExceededTimeLimit
        282,  # TransactionCoordinatorReachedAbortDecision
        290,  # TransactionExceededLifetimeLimitSeconds
        314,  # ObjectIsBusy
        317,  # ConnectionPoolExpired
        358,  # InternalTransactionNotSupported
        365,  # TemporarilyUnavailable
        384,  # ConnectionError
        402,  # ResourceExhausted
        406,  # MigrationBlockingOperationCoordinatorCleaningUp
        407,  # PooledConnectionAcquisitionExceededTimeLimit
        412,  # UpdatesStillPending
        9001,  # SocketException
        10107,  # NotWritablePrimary
        11600,  # InterruptedAtShutdown
        11601,  # Interrupted
        11602,  # InterruptedDueToReplStateChange
        12586,  # BackgroundOperationInProgressForDatabase
        12587,  # BackgroundOperationInProgressForNamespace
        13388,  # StaleConfig
        13435,  # NotPrimaryNoSecondaryOk
        13436,  # NotPrimaryOrSecondary
        50915,  # BackupCursorOpenConflictWithCheckpoint
        91331,  # RemoteCommandFailed
    }
)

# "NetworkError" is checked separately as part of network-error detection.
TRANSIENT_ERROR_LABELS = (
    "ResumableChangeStreamError",
    "RetryableWriteError",
    "TransientTransactionError",
)

_NETWORK_ERROR_MESSAGES = frozenset({"no reachable servers", "Closed explicitly", "connection closed"})
_NETWORK_EXCEPTIONS = (ConnectionError, TimeoutError, socket.gaierror, socket.herror, EOFError)
_CANCELLED_EXCEPTIONS = (asyncio.CancelledError, concurrent.futures.CancelledError)


def _root_cause(err: BaseException) -> BaseException:
    """Follow the explicit cause chain down to the original error."""
    seen = {id(err)}
    while err.__cause__ is not None and id(err.__cause__) not in seen:
        err = err.__cause__
        seen.add(id(err))
    return err


def _cause_chain(err: BaseException):
    seen: set[int] = set()
    current: Optional[BaseException] = err
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__


def _first_pymongo_error(err: BaseException) -> Optional[PyMongoError]:
    return next((e for e in _cause_chain(err) if isinstance(e, PyMongoError)), None)


def _details(err: BaseException) -> Mapping[str, Any]:
    details = getattr(err, "details", None)
    return details if isinstance(details, Mapping) else {}


def _entry_code(entry: Any) -> Optional[int]:
    if isinstance(entry, Mapping) and entry.get("code") is not None:
        return int(entry["code"])
    return None


def get_error_code(err: Optional[BaseException]) -> int:
    """Return the error's top-level code, or 0 if there is none."""
    if err is None:
        return 0
    cause = _root_cause(err)
    if isinstance(cause, BulkWriteError):
        details = _details(cause)
        for entry in details.get("writeErrors") or []:
            code = _entry_code(entry)
            return code if code is not None else 0
        for entry in details.get("writeConcernErrors") or []:
            code = _entry_code(entry)
            return code if code is not None else 0
        return 0
    if isinstance(cause, OperationFailure):
        return int(cause.code) if cause.code is not None else 0
    return 0


def error_codes(err: Optional[BaseException]) -> list[int]:
    """Every server error code the error carries, top-level and nested."""
    if err is None:
        return []
    found = _first_pymongo_error(err)
    if found is None:
        return []
    details = _details(found)
    codes: list[int] = []
    if isinstance(found, BulkWriteError):
        entries = list(details.get("writeErrors") or []) + list(
            details.get("writeConcernErrors") or []
        )
        codes.extend(c for c in map(_entry_code, entries) if c is not None)
        return codes
    if isinstance(found, OperationFailure):
        if found.code is not None:
            codes.append(int(found.code))
        wce_code = _entry_code(details.get("writeConcernError"))
        if wce_code is not None:
            codes.append(wce_code)
    return codes


def _has_error_code(err: BaseException, code: int) -> bool:
    return code in error_codes(err)


def is_http_client_timeout_error(err: BaseException) -> bool:
    return "Client.Timeout exceeded while awaiting headers" in str(err)


def is_duplicate_key_error(err: BaseException) -> bool:
    if any(isinstance(e, DuplicateKeyError) for e in _cause_chain(err)):
        return True
    return any(code in _DUPLICATE_KEY_CODES for code in error_codes(err))


def is_index_conflict_error(err: BaseException) -> bool:
    """IndexOptionsConflict (85) or IndexKeySpecsConflict (86)."""
    return get_error_code(err) in (85, 86)


def is_index_not_found_error(err: BaseException) -> bool:
    return get_error_code(err) == 27


def is_namespace_exists_error(err: BaseException) -> bool:
    return get_error_code(err) in (48, 17399)


def is_namespace_not_found_error(err: BaseException) -> bool:
    return get_error_code(err) == 26


def is_option_not_supported_on_view(err: BaseException) -> bool:
    return get_error_code(err) == 167


def is_failed_to_parse_error(err: BaseException) -> bool:
    return get_error_code(err) == 9


def is_context_canceled_error(err: BaseException) -> bool:
    return isinstance(err, _CANCELLED_EXCEPTIONS) or "context canceled" in str(err)


def is_collection_uuid_mismatch_error(err: BaseException) -> bool:
    return get_error_code(err) == 361


def is_command_not_supported_on_view_error(err: BaseException) -> bool:
    return get_error_code(err) == 166


def is_stale_cluster_time_error(err: BaseException) -> bool:
    return get_error_code(err) == 209


def _is_network_error(err: BaseException) -> bool:
    if isinstance(err, _NETWORK_EXCEPTIONS):
        return True
    if str(err) in _NETWORK_ERROR_MESSAGES:
        return True
    if isinstance(err, ConnectionFailure):
        return True
    return isinstance(err, PyMongoError) and err.has_error_label("NetworkError")


def _has_transient_error_code(err: BaseException) -> bool:
    # The server may send "not master" without an error code.
    if get_error_code(err) == 0 and "not master" in str(err):
        return True
    return any(code in TRANSIENT_ERROR_CODES for code in error_codes(err))


def _has_transient_error_label(err: BaseException) -> bool:
    return isinstance(err, PyMongoError) and any(
        err.has_error_label(label) for label in TRANSIENT_ERROR_LABELS
    )


def is_transient_error(err: Optional[BaseException]) -> bool:
    """Whether the error is reconnectable and the operation can be retried."""
    if err is None:
        return False
    cause = _root_cause(err)
    if is_context_canceled_error(cause):
        return False
    return (
        _is_network_error(cause)
        or _has_transient_error_code(cause)
        or _has_transient_error_label(cause)
    )


def _server_messages(err: PyMongoError) -> list[str]:
    messages = [str(err)]
    details = _details(err)
    if isinstance(details.get("errmsg"), str):
        messages.append(details["errmsg"])
    for key in ("writeErrors", "writeConcernErrors"):
        for entry in details.get(key) or []:
            if isinstance(entry, Mapping) and isinstance(entry.get("errmsg"), str):
                messages.append(entry["errmsg"])
    wce = details.get("writeConcernError")
    if isinstance(wce, Mapping) and isinstance(wce.get("errmsg"), str):
        messages.append(wce["errmsg"])
    return messages


def has_server_error_message(err: BaseException, message: str) -> bool:
    """Whether the error is a server error whose message contains `message`."""
    cause = _root_cause(err)
    if not isinstance(cause, OperationFailure):
        return False
    return any(message in text for text in _server_messages(cause))


def _error_document(err: BaseException) -> Mapping[str, Any]:
    if isinstance(err, BulkWriteError):
        for entry in _details(err).get("writeErrors") or []:
            return entry if isinstance(entry, Mapping) else {}
        return {}
    if isinstance(err, OperationFailure):
        return _details(err)
    return {}


def get_actual_collection_from_collection_uuid_mismatch_error(err: BaseException) -> str:
    """Return the `actualCollection` of a CollectionUUIDMismatch error.

    An empty string means the collection was dropped.
    """
    document = _error_document(_root_cause(err))
    if "actualCollection" not in document:
        raise ValueError("actualCollection must be a string, but it is missing")
    actual = document["actualCollection"]
    if actual is None:
        return ""
    if not isinstance(actual, str):
        raise ValueError(f"actualCollection must be a string, received {type(actual).__name__}")
    return actual