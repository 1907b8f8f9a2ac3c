from typing import Dict, Generic, Optional, TypeVar
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """JSON bodies use camelCase; Python code uses the snake_case field names"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ApiResponse(BaseModel, Generic[T]):
    """Envelope around every response body"""
    success: bool = True
    message: Optional[str] = None
    data: Optional[T] = None
    errors: Optional[Dict[str, str]] = None


def error_body(message: str, errors: Optional[Dict[str, str]] = None) -> dict:
    body = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return body
