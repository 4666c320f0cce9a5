"""Pydantic models for b2client configuration."""

from pydantic import BaseModel


class ClientConfig(BaseModel):
    """Configuration options for a B2 client.

    Attributes:
        application_key_id: key id used to authorize the account.
        application_key: secret part of the application key.
        api_url: base URL of the authorize endpoint.
        request_timeout: timeout of a single HTTP request, in seconds.
        upload_threads: number of parts uploaded concurrently.
        part_size: part size override, in bytes. Defaults to the size
            recommended by the service.
    """

    application_key_id: str | None = None
    application_key: str | None = None
    api_url: str | None = None
    request_timeout: float | None = None
    upload_threads: int | None = None
    part_size: int | None = None
