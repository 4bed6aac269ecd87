"""Type-aware writes into page elements.

The executor re-reads the element's live state before writing, dispatches on
the record's :class:`~fieldfill.utils.form_components.FieldShape` and, after a
successful write, fires the synthetic events that reactive frameworks listen
for. Writing a value the element already holds is a successful no-op.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

from fieldfill.errors import ElementSnapshotError, ElementWriteError
from fieldfill.utils.form_components import AttributeRecord, FieldShape, SelectOption, Visibility, classify_visibility

logger = logging.getLogger(__name__)

TRUTHY_VALUES = frozenset({"1", "true", "yes", "on", "y", "checked"})

CHANGE_EVENTS: Tuple[str, ...] = ("input", "change")
FOCUS_EVENTS: Tuple[str, ...] = ("focus", "blur")


class WritableElement(Protocol):
    async def live_state(self) -> Dict[str, Any]:
        ...

    async def set_value(self, value: str) -> None:
        ...

    async def select_option(self, value: str) -> None:
        ...

    async def set_checked(self, checked: bool) -> None:
        ...

    async def set_rich_text(self, html: str) -> None:
        ...

    async def dispatch_event(self, event_type: str) -> None:
        ...


@dataclass(frozen=True)
class FillOutcome:
    filled: bool
    detail: str = ""
    changed: bool = False


def is_truthy(value: str) -> bool:
    return value.strip().lower() in TRUTHY_VALUES


def mask_value(record: AttributeRecord, value: str) -> str:
    """Value as it may appear in log lines."""

    if record.is_password:
        return "*" * 8
    if len(value) > 60:
        return value[:57] + "..."
    return value


def resolve_option(options: Sequence[SelectOption], value: str) -> Optional[SelectOption]:
    """Exact value/label match (case-insensitive) first, then substring, first qualifying option wins."""

    target = value.strip().lower()
    if not target:
        return None
    for option in options:
        if option.value.strip().lower() == target or option.label.strip().lower() == target:
            return option
    for option in options:
        option_value = option.value.strip().lower()
        option_label = option.label.strip().lower()
        if (option_value and (target in option_value or option_value in target)) or (
            option_label and (target in option_label or option_label in target)
        ):
            return option
    return None


def _live_options(state: Mapping[str, Any], record: AttributeRecord) -> Tuple[SelectOption, ...]:
    raw = state.get("options")
    if not raw:
        return record.options
    return tuple(
        SelectOption(value=str(item.get("value") or ""), label=str(item.get("label") or ""))
        for item in raw
        if isinstance(item, Mapping)
    )


Writer = Callable[[WritableElement, AttributeRecord, Mapping[str, Any], str], Awaitable[FillOutcome]]


class AutofillExecutor:
    """Writes values into elements of every :class:`FieldShape`."""

    def __init__(self, *, focus_blur: bool = True) -> None:
        self.focus_blur = focus_blur
        self._writers: Dict[FieldShape, Writer] = {
            FieldShape.TEXT_INPUT: self._write_text,
            FieldShape.SELECT: self._write_select,
            FieldShape.CHECKBOX: self._write_checkbox,
            FieldShape.RADIO: self._write_radio,
            FieldShape.RICH_TEXT: self._write_rich_text,
        }
        missing = set(FieldShape) - set(self._writers)
        if missing:
            raise RuntimeError(f"No writer registered for shapes: {sorted(shape.value for shape in missing)}")

    async def _notify(self, element: WritableElement, *, plain_input: bool) -> None:
        events: List[str] = list(CHANGE_EVENTS)
        if plain_input and self.focus_blur:
            events.extend(FOCUS_EVENTS)
        for event_type in events:
            await element.dispatch_event(event_type)

    # ------------------------------------------------------------------
    # Per-shape writers
    # ------------------------------------------------------------------

    async def _write_text(self, element, record, state, value) -> FillOutcome:
        if str(state.get("value") or "") == value:
            return FillOutcome(True, "unchanged")
        await element.set_value(value)
        await self._notify(element, plain_input=True)
        return FillOutcome(True, "filled", changed=True)

    async def _write_select(self, element, record, state, value) -> FillOutcome:
        option = resolve_option(_live_options(state, record), value)
        if option is None:
            return FillOutcome(False, "no matching option")
        if str(state.get("value") or "") == option.value:
            return FillOutcome(True, "unchanged")
        await element.select_option(option.value)
        await self._notify(element, plain_input=False)
        return FillOutcome(True, f"selected {option.label or option.value!r}", changed=True)

    async def _write_checkbox(self, element, record, state, value) -> FillOutcome:
        desired = is_truthy(value)
        if bool(state.get("checked")) == desired:
            return FillOutcome(True, "unchanged")
        await element.set_checked(desired)
        await self._notify(element, plain_input=False)
        return FillOutcome(True, "checked" if desired else "unchecked", changed=True)

    async def _write_radio(self, element, record, state, value) -> FillOutcome:
        own_value = str(state.get("value") or record.value or "")
        if own_value.strip().lower() != value.strip().lower():
            return FillOutcome(False, "radio value mismatch")
        if state.get("checked"):
            return FillOutcome(True, "unchanged")
        await element.set_checked(True)
        await self._notify(element, plain_input=False)
        return FillOutcome(True, "checked", changed=True)

    async def _write_rich_text(self, element, record, state, value) -> FillOutcome:
        if str(state.get("value") or "").strip() == value.strip():
            return FillOutcome(True, "unchanged")
        await element.set_rich_text(value)
        await self._notify(element, plain_input=False)
        return FillOutcome(True, "filled", changed=True)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def write(self, element: WritableElement, record: AttributeRecord, value: str) -> FillOutcome:
        """Fill ``element`` with ``value`` and describe what happened."""

        try:
            state = await element.live_state()
        except ElementSnapshotError as exc:
            logger.warning(f"Element {record.describe()} is gone: {exc}")
            return FillOutcome(False, "element unavailable")

        if state.get("disabled"):
            logger.warning(f"Refusing to fill disabled element {record.describe()}")
            return FillOutcome(False, "disabled")
        if state.get("readOnly"):
            logger.warning(f"Refusing to fill read-only element {record.describe()}")
            return FillOutcome(False, "read-only")
        if classify_visibility(state.get("rect"), state.get("style"), state.get("viewport")) is Visibility.HIDDEN:
            logger.warning(f"Refusing to fill hidden element {record.describe()}")
            return FillOutcome(False, "hidden")

        writer = self._writers[record.shape]
        try:
            outcome = await writer(element, record, state, value)
        except ElementWriteError as exc:
            logger.error(f"Write to {record.describe()} failed: {exc}")
            return FillOutcome(False, "write failed")

        if outcome.changed:
            logger.info(f"Filled {record.describe()} with {mask_value(record, value)!r}")
        elif outcome.filled:
            logger.debug(f"{record.describe()} already holds the value")
        else:
            logger.warning(f"Could not fill {record.describe()}: {outcome.detail}")
        return outcome

    async def fill(self, element: WritableElement, record: AttributeRecord, value: str) -> bool:
        return (await self.write(element, record, value)).filled
