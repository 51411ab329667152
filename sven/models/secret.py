"""Secret model for sven."""

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Secret(BaseModel):
    """A named secret value."""

    key: str = Field(description="Case-sensitive unique name")
    value: str = Field(description="Plaintext value")

    model_config = ConfigDict(frozen=True)

    @field_validator("key")
    @classmethod
    def _key_not_empty(cls, key: str) -> str:
        if not key:
            raise ValueError("Secret key must not be empty")
        return key
