from __future__ import annotations


class CloudApiError(Exception):
    def __init__(
        self,
        message: str,
        *,
        http_status: int | None = None,
        response_body: str | None = None,
        endpoint: str | None = None,
        retry_after_sec: float | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.http_status = http_status
        self.response_body = response_body
        self.endpoint = endpoint
        self.retry_after_sec = retry_after_sec

    def truncated_body(self, limit: int = 2000) -> str | None:
        body = self.response_body
        if body is None or len(body) <= limit:
            return body
        return body[: limit - 3] + "..."

    def __str__(self) -> str:
        if self.http_status is None:
            return self.message
        return f"{self.message} (HTTP {self.http_status})"
