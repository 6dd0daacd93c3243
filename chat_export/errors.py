from typing import Any, Dict, Optional


class ChatExportError(Exception):
    """
    Base class for every error the extraction and print paths surface.

    Attributes:
        code: machine-readable error code (e.g. "parse_failed")
        http_status: status the HTTP layer should answer with
        detail: optional diagnostics, only exposed when debug is requested
    """

    code = "chat_export_error"
    http_status = 500

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None, http_status: Optional[int] = None):
        self.message = message
        self.detail = detail
        if http_status is not None:
            self.http_status = http_status
        super().__init__(message)

    def to_dict(self, debug: bool = False) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.code, "message": self.message}
        if debug and self.detail:
            body["debug"] = self.detail
        return body


class InvalidUrl(ChatExportError):
    """URL is not a share link on an allow-listed host."""

    code = "invalid_url"
    http_status = 400


class FetchFailed(ChatExportError):
    """Static GET failed. Never reaches the caller: the pipeline falls back to rendering."""

    code = "fetch_failed"
    http_status = 502

    def __init__(self, message: str, status: Optional[int] = None, response=None):
        super().__init__(message)
        self.status = status
        self.response = response


class ParseFailed(ChatExportError):
    code = "parse_failed"
    http_status = 422


class RenderInfraFailure(ChatExportError):
    """Headless browser could not be started (or the pool is already shut down)."""

    code = "render_infra_failure"
    http_status = 503


class RenderTimeout(ChatExportError):
    code = "render_timeout"
    http_status = 504


class RenderCrashed(ChatExportError):
    code = "render_crashed"
    http_status = 502


class PdfGenerationFailed(ChatExportError):
    code = "pdf_generation_failed"
    http_status = 400
