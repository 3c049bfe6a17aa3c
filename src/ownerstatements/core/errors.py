#!/usr/bin/env python3
"""
Core Errors

Errors shared by the storage layer and the vendor import pipeline. Every
error carries a short user_message; stack detail is logged, never put in
the message.
"""


class VendorImportError(Exception):
    """Base class for vendor import failures."""

    retryable = False

    def __init__(self, user_message: str):
        super().__init__(user_message)
        self.user_message = user_message


class ValidationError(VendorImportError):
    """Bad file type, size, columns or request shape. Fix the input; do not retry as-is."""


class NotFoundError(VendorImportError):
    """Target statement, property or job does not exist for the organization."""


class InvalidTransition(VendorImportError):
    """An import job was asked to move to a state its current state forbids."""

    def __init__(self, job_id: str, current: str, requested: str):
        super().__init__(f"Import {job_id} cannot move from {current} to {requested}")
        self.job_id = job_id
        self.current = current
        self.requested = requested


class CommitInProgress(VendorImportError):
    """Another confirm of the same import holds the commit claim."""

    retryable = True

    def __init__(self, job_id: str):
        super().__init__(f"Import {job_id} is already being committed. Check its status and try again shortly.")
        self.job_id = job_id
