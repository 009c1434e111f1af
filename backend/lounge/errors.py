# Overview: Error taxonomy shared by services and routes.

"""
Every failure a caller can act on is one of these. Routes turn them into
{"error": message, "kind": kind} with the matching status code, so the client
can tell "not found" from "wrong state" from "provider down" and pick its
retry strategy.
"""

from __future__ import annotations


class LoungeError(Exception):
    """Base class for request-scoped business errors."""
    kind = "ERROR"
    status_code = 400

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message, "kind": self.kind}
        body.update(self.details)
        return body


class NotFound(LoungeError):
    kind = "NOT_FOUND"
    status_code = 404


class InvalidState(LoungeError):
    kind = "INVALID_STATE"
    status_code = 409


class StationUnavailable(InvalidState):
    kind = "STATION_UNAVAILABLE"


class SessionNotActive(InvalidState):
    kind = "SESSION_NOT_ACTIVE"


class ValidationError(LoungeError, ValueError):
    """400-level input problem."""
    kind = "VALIDATION_ERROR"
    status_code = 400


class SplitImbalance(LoungeError):
    """Split parts do not add up to the total; payment is refused until fixed."""
    kind = "SPLIT_IMBALANCE"
    status_code = 409


class ExternalServiceFailure(LoungeError):
    """Mobile-money provider error or timeout. Nothing was written; safe to retry."""
    kind = "EXTERNAL_SERVICE_FAILURE"
    status_code = 502


class SchemaMismatchError(LoungeError):
    kind = "SCHEMA_MISMATCH"
    status_code = 500
