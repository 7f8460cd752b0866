# Copyright (C) 2024 RabbitTrail Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Failure kinds raised by the services and mapped to HTTP responses in main."""


class RabbitTrailError(Exception):
    """Base class. ``code`` is the stable category clients switch on."""

    status_code: int = 500
    code: str = "error"
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(RabbitTrailError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class Forbidden(RabbitTrailError):
    status_code = 403
    code = "forbidden"
    default_message = "You don't have access to this project"


class ValidationError(RabbitTrailError):
    status_code = 400
    code = "validation_error"
    default_message = "Invalid data"


class Conflict(RabbitTrailError):
    status_code = 409
    code = "conflict"
    default_message = "Conflicts with existing data"


class Expired(RabbitTrailError):
    status_code = 410
    code = "invitation_expired"
    default_message = "This invitation has expired"


class AlreadyUsed(RabbitTrailError):
    status_code = 410
    code = "invitation_used"
    default_message = "This invitation has already been accepted"


class EmailMismatch(RabbitTrailError):
    status_code = 403
    code = "email_mismatch"
    default_message = "This invitation was sent to a different email address"
