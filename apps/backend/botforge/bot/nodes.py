from __future__ import annotations

import json
from enum import Enum
from typing import Any, Iterable, Optional, Sequence

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from botforge.bot.columns import FIELD_KEYS, Column
from botforge.bot.rich_assets import RichAsset, parse_rich_asset

ERROR_NODE = 99990
FALLBACK_VALUES = frozenset({"error", "other", "default", "fallback"})

# Fields that only make sense on one kind of node, keyed by attribute name.
ACTION_ONLY = ("command", "decision_variable", "what_next", "param_input", "output")
DECISION_ONLY = ("message", "rich_asset", "next_nodes", "answer_required", "nlu_disabled")

_TRUE = {"1", "true", "yes", "y", "on", "x"}
FALSE_FLAGS = {"", "0", "false", "no", "n", "off"}


class NodeKind(str, Enum):
    DECISION = "D"
    ACTION = "A"


class Branch(BaseModel):
    """One `value~target` case of an action's What Next routing."""

    model_config = ConfigDict(frozen=True)

    value: str = Field(..., min_length=1)
    target: int

    @property
    def is_fallback(self) -> bool:
        return self.value.strip().lower() in FALLBACK_VALUES

    def render(self) -> str:
        return f"{self.value}~{self.target}"


def parse_what_next(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, str):
        branches = []
        for part in value.split("|"):
            if not part.strip():
                continue
            match, sep, target = part.rpartition("~")
            if not sep:
                raise ValueError(f"what next case {part!r} is missing '~target'")
            branches.append({"value": match.strip(), "target": target.strip()})
        return branches
    if isinstance(value, dict):
        return [{"value": k, "target": v} for k, v in value.items()]
    if isinstance(value, (list, tuple)):
        branches = []
        for item in value:
            if isinstance(item, (list, tuple)) and len(item) == 2:
                branches.append({"value": item[0], "target": item[1]})
            elif isinstance(item, str):
                branches.extend(parse_what_next(item))
            else:
                branches.append(item)
        return branches
    raise ValueError(f"unsupported what next value: {value!r}")


def has_fallback(branches: Iterable[Branch]) -> bool:
    return any(b.is_fallback for b in branches)


def _alias(short: str, *extra: str) -> dict[str, Any]:
    return {"validation_alias": AliasChoices(short, *extra), "serialization_alias": short}


class NodeRecord(BaseModel):
    """A single node of the conversation graph.

    Accepts the short camelCase keys of the node object schema
    (`num`, `type`, `nextNodes`, `richType`, `decVar`, ...) as well as the
    snake_case attribute names. The record stays permissive about which
    fields are filled; `Serializer.normalize` enforces the decision/action
    split.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    num: int
    kind: NodeKind = Field(..., **_alias("type", "kind", "nodeType"))
    name: str = Field(..., min_length=1)
    intent: str = ""
    entity_type: str = Field("", **_alias("entityType", "entity_type"))
    entity: str = ""
    nlu_disabled: bool = Field(False, **_alias("nluDisabled", "nlu_disabled"))
    next_nodes: Optional[int] = Field(None, **_alias("nextNodes", "next_nodes"))
    message: str = ""
    rich_asset: Optional[RichAsset] = Field(None, **_alias("richAsset", "rich_asset"))
    answer_required: bool = Field(False, **_alias("ansReq", "answer_required", "answerRequired"))
    behaviors: str = ""
    command: str = ""
    description: str = ""
    output: str = ""
    node_input: str = Field("", **_alias("nodeInput", "node_input"))
    param_input: dict[str, Any] = Field(default_factory=dict, **_alias("paramInput", "param_input"))
    decision_variable: str = Field(
        "", **_alias("decVar", "decision_variable", "decisionVariable")
    )
    what_next: list[Branch] = Field(default_factory=list, **_alias("whatNext", "what_next"))
    node_tags: str = Field("", **_alias("nodeTags", "node_tags"))
    skill_tag: str = Field("", **_alias("skillTag", "skill_tag"))
    variable: str = ""
    platform_flag: str = Field("", **_alias("platformFlag", "platform_flag"))
    flows: str = ""
    css_class: str = Field("", **_alias("cssClass", "css_class", "cssClassname"))

    @model_validator(mode="before")
    @classmethod
    def _build_rich_asset(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        keys = ("richType", "rich_type", "richContent", "rich_content")
        if not any(k in data for k in keys):
            return data
        data = dict(data)
        rich_type = data.pop("richType", data.pop("rich_type", None))
        content = data.pop("richContent", data.pop("rich_content", None))
        asset = parse_rich_asset(rich_type, content)
        if asset is not None:
            data["rich_asset"] = asset
        return data

    @field_validator("kind", mode="before")
    @classmethod
    def _parse_kind(cls, value: Any) -> Any:
        if isinstance(value, str):
            text = value.strip().upper()
            if text in ("D", "DECISION"):
                return NodeKind.DECISION
            if text in ("A", "ACTION"):
                return NodeKind.ACTION
        return value

    @field_validator(
        "name",
        "intent",
        "entity_type",
        "entity",
        "message",
        "behaviors",
        "command",
        "description",
        "output",
        "node_input",
        "decision_variable",
        "node_tags",
        "skill_tag",
        "variable",
        "platform_flag",
        "flows",
        "css_class",
        mode="before",
    )
    @classmethod
    def _text(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("nlu_disabled", "answer_required", mode="before")
    @classmethod
    def _flag(cls, value: Any) -> Any:
        if value is None:
            return False
        if isinstance(value, str):
            text = value.strip().lower()
            if text in _TRUE:
                return True
            if text in FALSE_FLAGS:
                return False
        return value

    @field_validator("next_nodes", mode="before")
    @classmethod
    def _next(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip() or None
        if isinstance(value, (list, tuple)):
            if len(value) > 1:
                raise ValueError("next nodes holds a single node id")
            return value[0] if value else None
        return value

    @field_validator("param_input", mode="before")
    @classmethod
    def _params(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, str):
            text = value.strip()
            if not text:
                return {}
            try:
                value = json.loads(text)
            except json.JSONDecodeError as exc:
                raise ValueError(f"parameter input is not valid JSON: {exc.msg}") from exc
        return value

    @field_validator("what_next", mode="before")
    @classmethod
    def _branches(cls, value: Any) -> Any:
        return parse_what_next(value)

    @property
    def is_decision(self) -> bool:
        return self.kind is NodeKind.DECISION

    @property
    def is_action(self) -> bool:
        return self.kind is NodeKind.ACTION

    def rich_destinations(self) -> list[Any]:
        return self.rich_asset.destinations() if self.rich_asset is not None else []

    def out_degree(self) -> int:
        """Distinct user-facing destinations: next node plus rich-asset targets."""
        targets = {str(d) for d in self.rich_destinations()}
        if self.next_nodes is not None:
            targets.add(str(self.next_nodes))
        return len(targets)

    def destinations(self) -> list[int]:
        found: list[int] = []
        candidates: list[Any] = [self.next_nodes, *self.rich_destinations()]
        candidates.extend(b.target for b in self.what_next)
        for candidate in candidates:
            try:
                num = int(candidate)
            except (TypeError, ValueError):
                continue
            if num not in found:
                found.append(num)
        return found

    def to_fields(self) -> list[str]:
        rich_type, rich_content = self.rich_asset.render() if self.rich_asset is not None else ("", "")
        cells: dict[Column, str] = {
            Column.NUM: str(self.num),
            Column.TYPE: self.kind.value,
            Column.NAME: self.name,
            Column.INTENT: self.intent,
            Column.ENTITY_TYPE: self.entity_type,
            Column.ENTITY: self.entity,
            Column.NLU_DISABLED: "1" if self.nlu_disabled else "",
            Column.NEXT_NODES: "" if self.next_nodes is None else str(self.next_nodes),
            Column.MESSAGE: self.message,
            Column.RICH_TYPE: rich_type,
            Column.RICH_CONTENT: rich_content,
            Column.ANS_REQ: "1" if self.answer_required else "",
            Column.BEHAVIORS: self.behaviors,
            Column.COMMAND: self.command,
            Column.DESCRIPTION: self.description,
            Column.OUTPUT: self.output,
            Column.NODE_INPUT: self.node_input,
            Column.PARAM_INPUT: (
                json.dumps(self.param_input, separators=(",", ":"), ensure_ascii=False)
                if self.param_input
                else ""
            ),
            Column.DEC_VAR: self.decision_variable,
            Column.WHAT_NEXT: "|".join(b.render() for b in self.what_next),
            Column.NODE_TAGS: self.node_tags,
            Column.SKILL_TAG: self.skill_tag,
            Column.VARIABLE: self.variable,
            Column.PLATFORM_FLAG: self.platform_flag,
            Column.FLOWS: self.flows,
            Column.CSS_CLASS: self.css_class,
        }
        return [cells[col] for col in Column]

    @classmethod
    def from_fields(cls, fields: Sequence[str]) -> "NodeRecord":
        """Rebuild a record from one parsed table row."""
        data = {key: (fields[i] if i < len(fields) else "") for i, key in enumerate(FIELD_KEYS)}
        return cls.model_validate(data)
