"""Common schemas used across the API."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ErrorResponse(BaseModel):
    """Standard error response."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    error: str
    code: str | None = None
    request_id: str | None = None
    retry_after: int | None = Field(default=None, description="Seconds until retry, rate limits only")
