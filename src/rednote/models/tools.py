from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class SearchInput(BaseModel):
    query: str
    count: int = Field(default=10, ge=1, le=100)

    @field_validator("query")
    @classmethod
    def validate_query(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("query must not be empty")
        if len(v) > 500:
            raise ValueError("query must be at most 500 characters")
        return v


class SearchOutput(BaseModel):
    query: str
    count: int
    cached: bool
    results: list[dict]


class LoginCookiesInput(BaseModel):
    cookies: list[dict]

    @field_validator("cookies")
    @classmethod
    def validate_cookies(cls, v: list[dict]) -> list[dict]:
        if not v:
            raise ValueError("cookies must not be empty")
        for index, cookie in enumerate(v):
            if "name" not in cookie or "value" not in cookie:
                raise ValueError(f"cookie {index} must have 'name' and 'value'")
        return v
