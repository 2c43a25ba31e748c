from __future__ import annotations

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_api(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


def first_validation_message(exc: ValidationError, default: str = "Doğrulama hatası") -> str:
    errors = exc.errors()
    if not errors:
        return default
    first = errors[0]
    error = (first.get("ctx") or {}).get("error")
    if first.get("type") == "value_error" and error is not None:
        return str(error)
    return first.get("msg") or default


def validation_issues(exc: ValidationError) -> list[str]:
    issues = []
    for error in exc.errors():
        path = ".".join(str(part) for part in error.get("loc", ()))
        ctx_error = (error.get("ctx") or {}).get("error")
        message = str(ctx_error) if error.get("type") == "value_error" and ctx_error is not None else error.get("msg")
        issues.append(f"{path}: {message}")
    return issues
