"""
Shared argument types for tool schemas.
"""

from typing import Annotated

from pydantic import AfterValidator, HttpUrl, TypeAdapter, WithJsonSchema

_http_url = TypeAdapter(HttpUrl)


def _check_http_url(value: str) -> str:
    # Validate as http(s) but keep the caller's spelling (HttpUrl would add a trailing "/")
    _http_url.validate_python(value)
    return value


WebUrl = Annotated[
    str,
    AfterValidator(_check_http_url),
    WithJsonSchema({"type": "string", "format": "uri"}),
]
