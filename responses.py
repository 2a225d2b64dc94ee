"""
Uniform service response envelope.

Services never raise for expected failures; they hand back a
ServiceResponse and the HTTP layer decides how to render it.
"""
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ServiceResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    message: str
    status_code: int = Field(..., description="HTTP status the result maps to")
    data: Optional[Any] = None

    @classmethod
    def ok(cls, message: str, data: Any = None) -> "ServiceResponse":
        return cls(success=True, message=message, status_code=200, data=data)

    @classmethod
    def created(cls, message: str, data: Any = None) -> "ServiceResponse":
        return cls(success=True, message=message, status_code=201, data=data)

    @classmethod
    def bad_request(cls, message: str) -> "ServiceResponse":
        return cls(success=False, message=message, status_code=400)

    @classmethod
    def unauthorized(cls, message: str) -> "ServiceResponse":
        return cls(success=False, message=message, status_code=401)

    @classmethod
    def forbidden(cls, message: str) -> "ServiceResponse":
        return cls(success=False, message=message, status_code=403)

    @classmethod
    def not_found(cls, message: str) -> "ServiceResponse":
        return cls(success=False, message=message, status_code=404)

    @classmethod
    def conflict(cls, message: str) -> "ServiceResponse":
        return cls(success=False, message=message, status_code=409)

    @classmethod
    def internal_server_error(cls, message: str) -> "ServiceResponse":
        return cls(success=False, message=message, status_code=500)
