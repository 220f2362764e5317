"""Standard error-response schemas keyed by HTTP status code.

Each entry documents the common error envelope
``{error, message, code?, details?}`` with an example payload.
"""

from http import HTTPStatus

from opforge.schema.base import Schema
from opforge.schema.dsl import number, object_, string

# code -> (error slug, message, details example, description)
_STANDARD_ERRORS = {
    400: ("bad_request", "The request could not be understood or was missing required parameters",
          "Invalid JSON format in request body", "Bad Request"),
    401: ("unauthorized", "Authentication is required to access this resource",
          "Invalid or expired authentication token", "Unauthorized"),
    403: ("forbidden", "You do not have permission to access this resource",
          "Insufficient privileges for this operation", "Forbidden"),
    404: ("not_found", "The requested resource was not found",
          "User with ID 'usr_123' does not exist", "Not Found"),
    409: ("conflict", "The request conflicts with the current state of the resource",
          "A user with this email already exists", "Conflict"),
    422: ("unprocessable_entity", "The request was well-formed but contains semantic errors",
          "Cannot create user: business rules violation", "Unprocessable Entity"),
    429: ("too_many_requests", "Too many requests sent in a given amount of time",
          "Rate limit exceeded. Please try again in 60 seconds", "Too Many Requests"),
    500: ("internal_server_error", "An unexpected error occurred on the server",
          "Database connection failed", "Internal Server Error"),
    502: ("bad_gateway", "Bad gateway - upstream service is unavailable",
          "Unable to connect to authentication service", "Bad Gateway"),
    503: ("service_unavailable", "The service is temporarily unavailable",
          "Service is under maintenance. Please try again later", "Service Unavailable"),
}


def error_schema(code: int, slug: str, message: str, details: str) -> Schema:
    """Build the standard error envelope for ``code``."""
    return object_({
        "error": string().example(slug).required(),
        "message": string().example(message).required(),
        "code": number().example(code).optional(),
        "details": string().example(details).optional(),
    }).example({
        "error": slug,
        "message": message,
        "code": code,
        "details": details,
    }).required().freeze()


def validation_error_schema() -> Schema:
    """400 envelope carrying per-field messages."""
    return object_({
        "error": string().example("validation_failed").required(),
        "message": string().example("Request validation failed").required(),
        "code": number().example(400).optional(),
        "fields": object_({
            "email": string().optional(),
            "age": string().optional(),
        }).additional_properties(string()).example({
            "email": "Invalid email format",
            "age": "Age must be between 13 and 120",
        }).optional(),
    }).example({
        "error": "validation_failed",
        "message": "Request validation failed",
        "code": 400,
        "fields": {
            "email": "Invalid email format",
            "age": "Age must be between 13 and 120",
        },
    }).required().freeze()


STANDARD_ERROR_SCHEMAS: dict[int, Schema] = {
    code: error_schema(code, slug, message, details)
    for code, (slug, message, details, _) in _STANDARD_ERRORS.items()
}

STANDARD_ERROR_DESCRIPTIONS: dict[int, str] = {
    code: description for code, (_, _, _, description) in _STANDARD_ERRORS.items()
}

VALIDATION_ERROR_SCHEMA = validation_error_schema()


def standard_error(code: int) -> tuple[Schema, str]:
    """Return ``(schema, description)`` for ``code``.

    Unknown codes fall back to the 400 envelope with the HTTP reason phrase.
    """
    if code in STANDARD_ERROR_SCHEMAS:
        return STANDARD_ERROR_SCHEMAS[code], STANDARD_ERROR_DESCRIPTIONS[code]
    try:
        description = HTTPStatus(code).phrase
    except ValueError:
        description = f"Error {code}"
    return STANDARD_ERROR_SCHEMAS[400], description
