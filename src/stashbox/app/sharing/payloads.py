"""Per-kind payload schemas.

The sharing layer treats payloads as opaque; these models only validate
and normalize what the write paths accept for each feature.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from stashbox.app.errors import InvalidShareRequest

from .model import ResourceKind


class ClipboardPayload(BaseModel):
    model_config = ConfigDict(extra='ignore')

    content: str = ''
    is_bold: bool = False
    color: str | None = None


class LinkItem(BaseModel):
    model_config = ConfigDict(extra='ignore')

    label: str = ''
    value: str = ''


class LinkCategoryPayload(BaseModel):
    model_config = ConfigDict(extra='ignore')

    items: list[LinkItem] = Field(default_factory=list)


class CommandStep(BaseModel):
    model_config = ConfigDict(extra='ignore')

    order: int = 0
    instruction: str = ''
    command: str = ''
    warning: str = ''


class CommandVariable(BaseModel):
    model_config = ConfigDict(extra='ignore')

    name: str
    description: str = ''
    default_value: str = ''


class CommandPayload(BaseModel):
    model_config = ConfigDict(extra='ignore')

    command: str = ''
    description: str = ''
    os: str = 'any'
    tags: list[str] = Field(default_factory=list)
    steps: list[CommandStep] = Field(default_factory=list)
    variables: list[CommandVariable] = Field(default_factory=list)


PAYLOAD_MODELS: dict[ResourceKind, type[BaseModel]] = {
    ResourceKind.CLIPBOARD: ClipboardPayload,
    ResourceKind.LINK_CATEGORY: LinkCategoryPayload,
    ResourceKind.COMMAND: CommandPayload,
}


def normalize_payload(kind: ResourceKind, raw: Any) -> dict[str, Any]:
    """Validate ``raw`` against the kind's schema and return a plain dict.

    ``None`` yields the schema's empty payload.

    Raises:
        InvalidShareRequest: Payload does not match the schema.
    """
    model = PAYLOAD_MODELS[kind]
    try:
        return model.model_validate(raw or {}).model_dump()
    except ValidationError as exc:
        raise InvalidShareRequest(
            f'Invalid {kind.value} payload: {exc.error_count()} error(s).'
        ) from exc
