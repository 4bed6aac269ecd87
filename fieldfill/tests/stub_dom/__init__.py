"""In-memory element and page adapters for exercising the engine without a browser."""
from __future__ import annotations

import re
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set

from fieldfill.errors import ElementSnapshotError, ElementWriteError, SelectorError

VIEWPORT = {"width": 1280, "height": 800}
VISIBLE_RECT = {"top": 100, "left": 100, "bottom": 130, "right": 400, "width": 300, "height": 30}
OFFSCREEN_RECT = {"top": 1500, "left": 100, "bottom": 1530, "right": 400, "width": 300, "height": 30}
COLLAPSED_RECT = {"top": 0, "left": 0, "bottom": 0, "right": 0, "width": 0, "height": 0}

# Simple ``tag[attr op "value"]`` compounds; anything richer matches every element.
_COMPOUND = re.compile(r'^(?P<tag>[a-z]+)?(?P<attrs>(?:\[[a-z-]+[*^$]?="[^"]*"\])*)$')
_ATTRIBUTE = re.compile(r'\[(?P<attr>[a-z-]+)(?P<op>[*^$]?=)"(?P<value>[^"]*)"\]')
_SNAPSHOT_ATTRIBUTES = {"name": "name", "id": "id", "type": "type", "placeholder": "placeholder", "class": "className"}
_OPERATORS: Dict[str, Callable[[str, str], bool]] = {
    "=": lambda actual, wanted: actual == wanted,
    "*=": lambda actual, wanted: bool(wanted) and wanted in actual,
    "^=": lambda actual, wanted: bool(wanted) and actual.startswith(wanted),
    "$=": lambda actual, wanted: bool(wanted) and actual.endswith(wanted),
}


def selector_matcher(selector: str) -> Optional[Callable[[Dict[str, Any]], bool]]:
    """Compile a comma list of simple compounds into a snapshot predicate, or ``None``."""

    compounds = []
    for part in selector.split(","):
        match = _COMPOUND.match(part.strip())
        if match is None or not (match.group("tag") or match.group("attrs")):
            return None
        checks = [
            (attr.group("attr"), attr.group("op"), attr.group("value"))
            for attr in _ATTRIBUTE.finditer(match.group("attrs"))
        ]
        if any(name not in _SNAPSHOT_ATTRIBUTES for name, _, _ in checks):
            return None
        compounds.append((match.group("tag"), checks))

    def matches(state: Dict[str, Any]) -> bool:
        for tag, checks in compounds:
            if tag and state["tag"] != tag:
                continue
            if all(_OPERATORS[op](str(state[_SNAPSHOT_ATTRIBUTES[name]] or ""), value) for name, op, value in checks):
                return True
        return False

    return matches


def make_snapshot(
    tag: str = "input",
    *,
    type: str = "text",
    name: str = "",
    id: str = "",
    placeholder: str = "",
    class_name: str = "",
    value: str = "",
    aria_label: str = "",
    dataset: Optional[Mapping[str, str]] = None,
    labels: Optional[Mapping[str, str]] = None,
    form: Optional[Mapping[str, str]] = None,
    disabled: bool = False,
    read_only: bool = False,
    checked: Optional[bool] = None,
    content_editable: bool = False,
    rich_text_frame: bool = False,
    options: Sequence[Mapping[str, str]] = (),
    rect: Optional[Mapping[str, float]] = None,
    style: Optional[Mapping[str, str]] = None,
    uid: Optional[int] = None,
) -> Dict[str, Any]:
    """Raw snapshot in the shape the Playwright adapter returns."""

    if checked is None and tag == "input" and type in ("checkbox", "radio"):
        checked = False
    return {
        "uid": uid,
        "tag": tag,
        "type": type if tag == "input" else "",
        "name": name,
        "id": id,
        "placeholder": placeholder,
        "className": class_name,
        "value": value,
        "ariaLabel": aria_label,
        "dataset": dict(dataset or {}),
        "labels": {"forLabel": "", "ancestorLabel": "", "siblingLabel": "", **dict(labels or {})},
        "form": dict(form) if form is not None else None,
        "disabled": disabled,
        "readOnly": read_only,
        "checked": checked,
        "contentEditable": content_editable,
        "richTextFrame": rich_text_frame,
        "options": [dict(option) for option in options],
        "rect": dict(rect or VISIBLE_RECT),
        "style": {"display": "block", "visibility": "visible", "opacity": "1", **dict(style or {})},
        "viewport": dict(VIEWPORT),
    }


class StubElement:
    """Element adapter over a mutable snapshot dictionary.

    Records every write and event so tests can assert on what the engine did.
    """

    def __init__(self, tag: str = "input", **attributes: Any) -> None:
        self.state = make_snapshot(tag, **attributes)
        self.snapshot_calls = 0
        self.uid_calls = 0
        self.live_state_calls = 0
        self.writes: List[tuple] = []
        self.events: List[str] = []
        self.detached = False
        self.fail_writes = False

    def __repr__(self) -> str:
        return f"StubElement({self.state['tag']!r}, name={self.state['name']!r}, uid={self.state['uid']!r})"

    @property
    def value(self) -> str:
        return self.state["value"]

    @property
    def checked(self) -> Optional[bool]:
        return self.state["checked"]

    async def snapshot(self) -> Dict[str, Any]:
        self.snapshot_calls += 1
        if self.detached:
            raise ElementSnapshotError("detached")
        return dict(self.state)

    async def uid(self) -> Optional[int]:
        self.uid_calls += 1
        if self.detached:
            raise ElementSnapshotError("detached")
        return self.state["uid"]

    async def live_state(self) -> Dict[str, Any]:
        self.live_state_calls += 1
        if self.detached:
            raise ElementSnapshotError("detached")
        keys = ("disabled", "readOnly", "value", "checked", "options", "rect", "style", "viewport")
        return {key: self.state[key] for key in keys}

    def _write(self, operation: str, payload: Any) -> None:
        if self.fail_writes or self.detached:
            raise ElementWriteError(f"{operation} failed")
        self.writes.append((operation, payload))

    async def set_value(self, value: str) -> None:
        self._write("value", value)
        self.state["value"] = value

    async def select_option(self, value: str) -> None:
        self._write("select", value)
        self.state["value"] = value

    async def set_checked(self, checked: bool) -> None:
        self._write("checked", checked)
        self.state["checked"] = checked

    async def set_rich_text(self, html: str) -> None:
        self._write("rich_text", html)
        self.state["value"] = html

    async def dispatch_event(self, event_type: str) -> None:
        if self.fail_writes or self.detached:
            raise ElementWriteError(f"dispatch {event_type} failed")
        self.events.append(event_type)


class StubPage:
    """Page adapter returning a fixed element list.

    ``invalid_selectors`` raise :class:`SelectorError`; ``routes`` maps a
    selector to a subset of elements. Other selectors are matched against the
    snapshots when they are simple ``tag[attr="value"]`` lists and return every
    element otherwise.
    """

    def __init__(
        self,
        elements: Iterable[StubElement] = (),
        *,
        invalid_selectors: Iterable[str] = (),
        routes: Optional[Mapping[str, Sequence[StubElement]]] = None,
    ) -> None:
        self.elements: List[StubElement] = list(elements)
        for index, element in enumerate(self.elements, start=1):
            if element.state["uid"] is None:
                element.state["uid"] = index
        self.invalid_selectors: Set[str] = set(invalid_selectors)
        self.routes = dict(routes or {})
        self.queries: List[str] = []
        self._callback: Optional[Callable[[int, int], Any]] = None
        self.observing = False

    async def query_selector_all(self, selector: str) -> List[StubElement]:
        self.queries.append(selector)
        if selector in self.invalid_selectors:
            raise SelectorError(selector, f"'{selector}' is not a valid selector")
        if selector in self.routes:
            return list(self.routes[selector])
        matches = selector_matcher(selector)
        if matches is None:
            return list(self.elements)
        return [element for element in self.elements if matches(element.state)]

    async def observe_mutations(self, callback: Callable[[int, int], Any]) -> None:
        self._callback = callback
        self.observing = True

    async def stop_observing(self) -> None:
        self._callback = None
        self.observing = False

    def emit(self, external: int = 1, self_originated: int = 0) -> Any:
        """Deliver one mutation batch to the registered observer callback."""

        if self._callback is None:
            return None
        return self._callback(external, self_originated)
