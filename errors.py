# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
Error taxonomy for the NodeNetworkConfig reconciler.

Cluster failures are tagged once, where the kubernetes client raises them
(see from_api_exception), so that controllers branch on the error class
instead of re-parsing API server responses:

- NotFoundError: the object does not exist, its kind is served
- KindUndefinedError: the custom resource kind is not served at all
- ConflictError: the write lost against a concurrent writer
- TransientError: anything else (5xx, transport failures, unsynced cache)
"""

import json
from typing import Dict, Optional

from kubernetes import client

# Status cause reported by the API machinery when the server answered with
# something that is not a Status object (e.g. "404 page not found").
CAUSE_UNEXPECTED_SERVER_RESPONSE = "UnexpectedServerResponse"


class ClusterError(Exception):
    """Base class for failed reads/writes against the API server"""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class NotFoundError(ClusterError):
    """The requested object does not exist"""


class KindUndefinedError(ClusterError):
    """The custom resource kind is not registered on the cluster"""


class ConflictError(ClusterError):
    """The object was modified since it was read"""


class TransientError(ClusterError):
    """Network or server failure; the caller may retry"""


class TranslationError(Exception):
    """Observed custom resource status cannot be turned into a CNS request"""


class ConfigurationError(Exception):
    """A controller cannot be constructed with the given inputs"""


class ControllerStateError(Exception):
    """A lifecycle operation was called in the wrong state"""


def _parse_status(body) -> Optional[Dict]:
    """Return the body as a metav1.Status dict, or None if it is not one."""
    if not body:
        return None
    if isinstance(body, bytes):
        body = body.decode('utf-8', errors='replace')
    try:
        parsed = json.loads(body)
    except (TypeError, ValueError):
        return None
    if isinstance(parsed, dict) and parsed.get('kind') == 'Status':
        return parsed
    return None


def _has_unexpected_response_cause(status: Dict) -> bool:
    causes = (status.get('details') or {}).get('causes') or []
    for cause in causes:
        cause_type = cause.get('reason') or cause.get('type')
        if cause_type == CAUSE_UNEXPECTED_SERVER_RESPONSE:
            return True
    return False


def from_api_exception(exc: client.exceptions.ApiException,
                       context: str = "") -> ClusterError:
    """
    Classify a kubernetes ApiException into the cluster error taxonomy.

    A 404 for a kind the API server does not serve comes back as a plain
    "404 page not found" page rather than a Status object; that, or a
    Status carrying an UnexpectedServerResponse cause, means the kind is
    undefined. A 404 with a regular NotFound Status means only the
    instance is missing.
    """
    prefix = f"{context}: " if context else ""
    status = _parse_status(exc.body)
    message = (status or {}).get('message') or exc.reason or str(exc)

    if exc.status == 404:
        if status is None or _has_unexpected_response_cause(status):
            return KindUndefinedError(
                f"{prefix}resource kind is not defined on cluster ({message})",
                status=404)
        return NotFoundError(f"{prefix}{message}", status=404)
    if exc.status == 409:
        return ConflictError(f"{prefix}{message}", status=409)
    return TransientError(f"{prefix}{message}", status=exc.status)


def is_kind_undefined(err: Optional[BaseException]) -> bool:
    """Tell whether err, or any error it wraps, means the kind is undefined."""
    seen = set()
    while err is not None and id(err) not in seen:
        seen.add(id(err))
        if isinstance(err, KindUndefinedError):
            return True
        if isinstance(err, client.exceptions.ApiException):
            return isinstance(from_api_exception(err), KindUndefinedError)
        err = err.__cause__ or err.__context__
    return False
