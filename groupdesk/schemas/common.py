"""Shared schema bits: camelCase wire format and the success envelope."""
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Serializes snake_case fields as camelCase; accepts either on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class Envelope(CamelModel):
    success: int = 1


class MessageOut(Envelope):
    message: str


class ErrorOut(Envelope):
    success: int = 0
    message: str
