from typing import Any, Dict, Optional


class IngestionError(Exception):
    """Terminal failure of one ingestion request, mapped to an HTTP response."""

    status_code = 400
    error = "Bad request"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.error)
        self.message = message

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.error}
        if self.message:
            payload["message"] = self.message
        return payload


class MissingFormId(IngestionError):
    error = "Missing formId"


class FormNotFound(IngestionError):
    status_code = 404
    error = "Form not found"


class NoFormData(IngestionError):
    error = "No form data received"


class NoUsableFormData(IngestionError):
    error = "No usable form data"


class MethodNotAllowed(IngestionError):
    status_code = 405
    error = "Method not allowed"


class ServerError(IngestionError):
    status_code = 500
    error = "Server error"
