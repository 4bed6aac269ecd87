"""Attribute extraction: turn one interactive element into an :class:`AttributeRecord`.

The browser side (:mod:`fieldfill.browser.handles`) gathers a raw snapshot of
an element in a single round-trip. Everything that decides *what* the snapshot
means lives here, as plain Python, so it can be exercised without a browser:

* which tag/type combinations are fillable at all and which
  :class:`FieldShape` they resolve to,
* the label resolution order (``label[for]``, ancestor ``<label>``, preceding
  label-like sibling),
* visibility classification from the bounding box, computed style and viewport.
"""
from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple

from fieldfill.errors import FieldfillError

logger = logging.getLogger(__name__)

CONTROL_SELECTOR = 'input, textarea, select, [contenteditable="true"], [contenteditable=""], .mceContentBody, iframe'
"""CSS selector that targets every element shape the engine knows how to fill."""

UNSUPPORTED_INPUT_TYPES = frozenset({"button", "submit", "reset", "image", "file", "range", "color"})
RICH_TEXT_CLASSES = ("mceContentBody", "ql-editor", "ProseMirror", "cke_editable", "note-editable")

LABEL_STRATEGIES: Tuple[str, ...] = ("forLabel", "ancestorLabel", "siblingLabel")


class FieldShape(str, enum.Enum):
    """Closed set of element shapes the autofill executor can write to."""

    TEXT_INPUT = "text_input"
    SELECT = "select"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    RICH_TEXT = "rich_text"


class Visibility(str, enum.Enum):
    VISIBLE = "visible"  # rendered and inside the viewport
    OFFSCREEN = "offscreen"  # rendered, outside the viewport
    HIDDEN = "hidden"


@dataclass(frozen=True)
class FormContext:
    """Identity of the nearest enclosing ``<form>``."""

    form_id: str = ""
    class_name: str = ""

    @property
    def text(self) -> str:
        return " ".join(filter(None, [self.form_id, self.class_name])).strip()


@dataclass(frozen=True)
class SelectOption:
    value: str
    label: str


@dataclass(frozen=True)
class AttributeRecord:
    """Immutable snapshot of the static signals of one element, taken at scan time."""

    tag: str
    shape: FieldShape
    name: str = ""
    element_id: str = ""
    placeholder: str = ""
    class_name: str = ""
    type: str = ""
    value: str = ""
    aria_label: str = ""
    dataset_hints: Mapping[str, str] = field(default_factory=dict)
    label_text: str = ""
    label_source: str = ""
    form_context: Optional[FormContext] = None
    disabled: bool = False
    read_only: bool = False
    checked: Optional[bool] = None
    visibility: Visibility = Visibility.VISIBLE
    options: Tuple[SelectOption, ...] = ()
    uid: Optional[int] = None

    @property
    def identity(self) -> Tuple[Any, ...]:
        """Structural identity used to de-duplicate candidates.

        ``(tag, name, id)``. Radio and checkbox groups share one ``name`` across
        their options, and anonymous controls have nothing to tell them apart, so
        both also carry the option ``value`` and the page-assigned ``uid``.
        """

        if self.shape in (FieldShape.RADIO, FieldShape.CHECKBOX) or not self.has_identifier:
            return (self.tag, self.name, self.element_id, self.value, self.uid)
        return (self.tag, self.name, self.element_id)

    @property
    def is_empty(self) -> bool:
        if self.shape in (FieldShape.CHECKBOX, FieldShape.RADIO):
            return not self.checked
        return self.value == "" or self.value == self.placeholder

    @property
    def is_hidden_type(self) -> bool:
        return self.tag == "input" and self.type == "hidden"

    @property
    def is_password(self) -> bool:
        return self.tag == "input" and self.type == "password"

    @property
    def has_identifier(self) -> bool:
        return bool(self.name or self.element_id)

    def data_hint(self, key: str) -> str:
        return str(self.dataset_hints.get(key, "") or "")

    def describe(self) -> str:
        """Short CSS-like descriptor used in fill reports and log lines."""

        descriptor = self.tag
        if self.element_id:
            descriptor += f"#{self.element_id}"
        if self.name:
            descriptor += f'[name="{self.name}"]'
        if self.tag == "input" and self.type:
            descriptor += f'[type="{self.type}"]'
        if not self.has_identifier:
            if self.placeholder:
                descriptor += f'[placeholder="{self.placeholder}"]'
            elif self.uid is not None:
                descriptor += f"@{self.uid}"
        return descriptor


class SnapshotSource(Protocol):
    """Anything that can produce a raw element snapshot (see :mod:`fieldfill.browser.handles`)."""

    async def snapshot(self) -> Dict[str, Any]:
        ...


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _collapse(value: Any) -> str:
    return re.sub(r"\s+", " ", _text(value)).strip()


def resolve_shape(snapshot: Mapping[str, Any]) -> Optional[FieldShape]:
    """Map a raw snapshot to a :class:`FieldShape`, or ``None`` when it cannot be filled."""

    tag = _text(snapshot.get("tag")).lower()
    class_name = _text(snapshot.get("className"))

    if tag == "input":
        input_type = (_text(snapshot.get("type")) or "text").lower()
        if input_type in UNSUPPORTED_INPUT_TYPES:
            return None
        if input_type == "checkbox":
            return FieldShape.CHECKBOX
        if input_type == "radio":
            return FieldShape.RADIO
        # Unknown future types behave like text in every browser.
        return FieldShape.TEXT_INPUT
    if tag == "textarea":
        return FieldShape.TEXT_INPUT
    if tag == "select":
        return FieldShape.SELECT
    if tag == "iframe":
        return FieldShape.RICH_TEXT if snapshot.get("richTextFrame") else None
    if snapshot.get("contentEditable"):
        return FieldShape.RICH_TEXT
    if any(marker in class_name.split() for marker in RICH_TEXT_CLASSES):
        return FieldShape.RICH_TEXT
    return None


def resolve_label(labels: Optional[Mapping[str, Any]]) -> Tuple[str, str]:
    """Return ``(text, strategy)`` for the first label strategy that produced text."""

    if not labels:
        return "", ""
    for strategy in LABEL_STRATEGIES:
        text = _collapse(labels.get(strategy))
        if text:
            return text, strategy
    return "", ""


def classify_visibility(
    rect: Optional[Mapping[str, Any]],
    style: Optional[Mapping[str, Any]],
    viewport: Optional[Mapping[str, Any]],
) -> Visibility:
    """Hidden when collapsed or styled away, off-screen when outside the viewport."""

    style = style or {}
    if _text(style.get("display")).lower() == "none":
        return Visibility.HIDDEN
    if _text(style.get("visibility")).lower() in {"hidden", "collapse"}:
        return Visibility.HIDDEN
    opacity = style.get("opacity")
    if opacity not in (None, ""):
        try:
            if float(opacity) == 0.0:
                return Visibility.HIDDEN
        except (TypeError, ValueError):
            pass

    if not rect:
        return Visibility.HIDDEN
    width = float(rect.get("width") or 0)
    height = float(rect.get("height") or 0)
    if width <= 0 or height <= 0:
        return Visibility.HIDDEN

    viewport = viewport or {}
    view_width = float(viewport.get("width") or 0)
    view_height = float(viewport.get("height") or 0)
    if not view_width or not view_height:
        return Visibility.VISIBLE
    top = float(rect.get("top") or 0)
    left = float(rect.get("left") or 0)
    bottom = float(rect.get("bottom", top + height) or 0)
    right = float(rect.get("right", left + width) or 0)
    if top < 0 or left < 0 or bottom > view_height or right > view_width:
        return Visibility.OFFSCREEN
    return Visibility.VISIBLE


def build_attribute_record(snapshot: Optional[Mapping[str, Any]]) -> Optional[AttributeRecord]:
    """Pure conversion of a raw snapshot into an :class:`AttributeRecord`."""

    if not snapshot:
        return None
    shape = resolve_shape(snapshot)
    if shape is None:
        return None

    tag = _text(snapshot.get("tag")).lower()
    input_type = _text(snapshot.get("type")).lower()
    if tag == "input" and not input_type:
        input_type = "text"

    label_text, label_source = resolve_label(snapshot.get("labels"))

    form = snapshot.get("form")
    form_context = None
    if isinstance(form, Mapping):
        form_context = FormContext(form_id=_text(form.get("id")), class_name=_text(form.get("className")))

    dataset = snapshot.get("dataset") or {}
    dataset_hints = {str(key): _text(value) for key, value in dict(dataset).items()}

    options = tuple(
        SelectOption(value=_text(option.get("value")), label=_collapse(option.get("label")))
        for option in snapshot.get("options") or ()
        if isinstance(option, Mapping)
    )

    checked = snapshot.get("checked")
    uid = snapshot.get("uid")

    return AttributeRecord(
        tag=tag,
        shape=shape,
        name=_text(snapshot.get("name")),
        element_id=_text(snapshot.get("id")),
        placeholder=_text(snapshot.get("placeholder")),
        class_name=_text(snapshot.get("className")),
        type=input_type,
        value=_text(snapshot.get("value")),
        aria_label=_text(snapshot.get("ariaLabel")),
        dataset_hints=dataset_hints,
        label_text=label_text,
        label_source=label_source,
        form_context=form_context,
        disabled=bool(snapshot.get("disabled")),
        read_only=bool(snapshot.get("readOnly")),
        checked=None if checked is None else bool(checked),
        visibility=classify_visibility(snapshot.get("rect"), snapshot.get("style"), snapshot.get("viewport")),
        options=options,
        uid=int(uid) if isinstance(uid, (int, float)) else None,
    )


async def extract_attributes(element: SnapshotSource) -> Optional[AttributeRecord]:
    """Snapshot ``element`` and build its record; ``None`` for unsupported or vanished elements."""

    try:
        snapshot = await element.snapshot()
    except FieldfillError as exc:
        logger.debug(f"Skipping element that could not be snapshotted: {exc}")
        return None
    return build_attribute_record(snapshot)
