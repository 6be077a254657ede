"""Rich assets attached to decision nodes.

Each variant knows its wire form (`render()` returns the `Rich Asset Type`
and `Rich Asset Content` cells) and the node ids it routes to. Content is
validated when parsed, so a record with a malformed asset never reaches the
serializer's column mapping.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator


class RichAssetError(ValueError):
    pass


class _Asset(BaseModel):
    model_config = ConfigDict(extra="ignore")

    def render(self) -> tuple[str, str]:
        raise NotImplementedError

    def destinations(self) -> list[Union[int, str]]:
        return []

    def _static(self, **payload: Any) -> str:
        body = {"type": "static"}
        body.update({k: v for k, v in payload.items() if v is not None})
        return json.dumps(body, separators=(",", ":"), ensure_ascii=False)


class ButtonOption(BaseModel):
    label: str = Field(..., min_length=1)
    dest: int

    @field_validator("label", mode="before")
    @classmethod
    def _clean_label(cls, value: Any) -> Any:
        # pipe and tilde are the button grammar's separators
        if isinstance(value, str):
            return value.replace("|", "/").replace("~", "-").strip()
        return value


class Buttons(_Asset):
    kind: Literal["button"] = "button"
    options: list[ButtonOption] = Field(..., min_length=1)

    def render(self) -> tuple[str, str]:
        return "button", "|".join(f"{o.label}~{o.dest}" for o in self.options)

    def destinations(self) -> list[Union[int, str]]:
        return [o.dest for o in self.options]


class ListOption(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    label: str = Field(..., min_length=1)
    dest: str = Field(..., min_length=1)
    description: Optional[str] = None


class ListPicker(_Asset):
    kind: Literal["listpicker"] = "listpicker"
    options: list[ListOption] = Field(..., min_length=1)

    def render(self) -> tuple[str, str]:
        return "listpicker", self._static(
            options=[o.model_dump(exclude_none=True) for o in self.options]
        )

    def destinations(self) -> list[Union[int, str]]:
        return [o.dest for o in self.options]


class QuickReplyOption(BaseModel):
    label: str = Field(..., min_length=1)
    dest: int


class QuickReply(_Asset):
    kind: Literal["quick_reply"] = "quick_reply"
    options: list[QuickReplyOption] = Field(..., min_length=1)

    def render(self) -> tuple[str, str]:
        return "quick_reply", self._static(options=[o.model_dump() for o in self.options])

    def destinations(self) -> list[Union[int, str]]:
        return [o.dest for o in self.options]


class DatePicker(_Asset):
    kind: Literal["datepicker"] = "datepicker"
    message: str = "Please select a date"

    def render(self) -> tuple[str, str]:
        return "datepicker", self._static(message=self.message)


class TimePicker(_Asset):
    kind: Literal["timepicker"] = "timepicker"
    message: str = "Please select a time"

    def render(self) -> tuple[str, str]:
        return "timepicker", self._static(message=self.message)


class FileUpload(_Asset):
    kind: Literal["file_upload"] = "file_upload"
    message: str = "Please upload a file"

    def render(self) -> tuple[str, str]:
        return "file_upload", self._static(message=self.message)


class Webview(_Asset):
    kind: Literal["webview"] = "webview"
    url: str = Field(..., min_length=1)
    label: Optional[str] = None
    dest: Optional[int] = None

    def render(self) -> tuple[str, str]:
        return "webview", self._static(url=self.url, label=self.label, dest=self.dest)

    def destinations(self) -> list[Union[int, str]]:
        return [] if self.dest is None else [self.dest]


class CarouselButton(BaseModel):
    label: str = Field(..., min_length=1)
    dest: int


class CarouselCard(BaseModel):
    title: str = Field(..., min_length=1)
    subtitle: Optional[str] = None
    image: Optional[str] = None
    buttons: list[CarouselButton] = Field(default_factory=list)


class Carousel(_Asset):
    kind: Literal["carousel"] = "carousel"
    cards: list[CarouselCard] = Field(..., min_length=1)

    def render(self) -> tuple[str, str]:
        return "carousel", self._static(cards=[c.model_dump(exclude_none=True) for c in self.cards])

    def destinations(self) -> list[Union[int, str]]:
        return [b.dest for card in self.cards for b in card.buttons]


RichAsset = Annotated[
    Union[Buttons, ListPicker, QuickReply, DatePicker, TimePicker, FileUpload, Webview, Carousel],
    Field(discriminator="kind"),
]

_ADAPTER: TypeAdapter[Any] = TypeAdapter(RichAsset)

_KIND_ALIASES = {
    "button": "button",
    "buttons": "button",
    "listpicker": "listpicker",
    "list_picker": "listpicker",
    "quick_reply": "quick_reply",
    "quickreply": "quick_reply",
    "quick_replies": "quick_reply",
    "datepicker": "datepicker",
    "date_picker": "datepicker",
    "timepicker": "timepicker",
    "time_picker": "timepicker",
    "file_upload": "file_upload",
    "fileupload": "file_upload",
    "webview": "webview",
    "carousel": "carousel",
}

_PROMPTED = {"datepicker", "timepicker", "file_upload"}
_CARD_KINDS = {"carousel"}


def _parse_pipe(text: str) -> list[dict[str, str]]:
    options = []
    for part in text.split("|"):
        if not part.strip():
            continue
        label, sep, dest = part.rpartition("~")
        if not sep:
            raise RichAssetError(f"button option {part!r} is missing '~destination'")
        options.append({"label": label, "dest": dest.strip()})
    return options


def _payload(kind: str, content: Any) -> dict[str, Any]:
    if isinstance(content, dict):
        return dict(content)
    if isinstance(content, list):
        return {"cards": content} if kind in _CARD_KINDS else {"options": content}
    text = "" if content is None else str(content).strip()
    if not text:
        return {}
    if text[0] in "{[":
        try:
            return _payload(kind, json.loads(text))
        except json.JSONDecodeError as exc:
            raise RichAssetError(f"{kind} content is not valid JSON: {exc.msg}") from exc
    if kind == "button":
        return {"options": _parse_pipe(text)}
    if kind in _PROMPTED:
        return {"message": text}
    if kind == "webview":
        return {"url": text}
    raise RichAssetError(f"{kind} content must be JSON")


def parse_rich_asset(rich_type: Any, content: Any) -> Optional[_Asset]:
    """Build a rich asset from the `richType`/`richContent` pair, or None when both are empty."""
    type_text = "" if rich_type is None else str(rich_type).strip().lower()
    if not type_text:
        if content in (None, "", {}, []):
            return None
        raise RichAssetError("rich asset content given without a rich asset type")
    kind = _KIND_ALIASES.get(type_text)
    if kind is None:
        raise RichAssetError(f"unknown rich asset type {rich_type!r}")
    payload = _payload(kind, content)
    payload["kind"] = kind
    try:
        return _ADAPTER.validate_python(payload)
    except ValidationError as exc:
        first = exc.errors()[0]
        where = ".".join(str(p) for p in first.get("loc", ()))
        raise RichAssetError(f"invalid {kind} content at {where}: {first.get('msg')}") from exc
