from typing import Any, Dict, List, Optional

import pytest
from playwright.async_api import Error as PlaywrightError

from fieldfill.autofill.watcher import MutationWatcher
from fieldfill.browser.handles import (
    LIVE_STATE_SCRIPT,
    MUTATION_BINDING,
    OBSERVER_SCRIPT,
    SET_RICH_TEXT_SCRIPT,
    SET_VALUE_SCRIPT,
    UID_SCRIPT,
    PlaywrightElement,
    PlaywrightPage,
)
from fieldfill.errors import ElementSnapshotError, ElementWriteError, SelectorError


class FakeFrame:
    def __init__(self, body: Optional["FakeHandle"]) -> None:
        self.body = body

    async def query_selector(self, selector: str) -> Optional["FakeHandle"]:
        return self.body if selector == "body" else None


class FakeHandle:
    def __init__(self, result: Any = None, *, fail: bool = False, frame: Optional[FakeFrame] = None) -> None:
        self.result = result
        self.fail = fail
        self.frame = frame
        self.calls: List[tuple] = []

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self.calls.append(("evaluate", script, arg))
        if self.fail:
            raise PlaywrightError("Element is not attached to the DOM")
        return self.result

    async def dispatch_event(self, event_type: str, init: Optional[Dict[str, Any]] = None) -> None:
        self.calls.append(("dispatch", event_type, init))
        if self.fail:
            raise PlaywrightError("Target closed")

    async def content_frame(self) -> Optional[FakeFrame]:
        return self.frame


class FakePage:
    url = "https://example.test/signup"

    def __init__(self, handles: Optional[List[FakeHandle]] = None) -> None:
        self.handles = handles or []
        self.bindings: Dict[str, Any] = {}
        self.init_scripts: List[str] = []
        self.evaluated: List[str] = []
        self.closed = False

    async def query_selector_all(self, selector: str) -> List[FakeHandle]:
        if selector.startswith("["):
            raise PlaywrightError(f"Unexpected token in {selector}")
        return list(self.handles)

    async def expose_binding(self, name: str, callback: Any) -> None:
        self.bindings[name] = callback

    async def add_init_script(self, script: str) -> None:
        self.init_scripts.append(script)

    async def evaluate(self, script: str) -> None:
        self.evaluated.append(script)

    def is_closed(self) -> bool:
        return self.closed


@pytest.mark.asyncio
async def test_read_errors_become_snapshot_errors():
    element = PlaywrightElement(FakeHandle(fail=True))

    with pytest.raises(ElementSnapshotError):
        await element.snapshot()


@pytest.mark.asyncio
async def test_uid_lookup_reads_only_the_uid():
    handle = FakeHandle({"uid": 7})

    assert await PlaywrightElement(handle).uid() == 7
    assert handle.calls == [("evaluate", UID_SCRIPT, None)]
    assert await PlaywrightElement(FakeHandle({})).uid() is None
    with pytest.raises(ElementSnapshotError):
        await PlaywrightElement(FakeHandle(fail=True)).uid()


@pytest.mark.asyncio
async def test_detached_live_state_is_reported():
    handle = FakeHandle({"connected": False, "value": ""})

    with pytest.raises(ElementSnapshotError):
        await PlaywrightElement(handle).live_state()
    assert handle.calls[0][1] == LIVE_STATE_SCRIPT


@pytest.mark.asyncio
async def test_writes_pass_the_value_and_translate_errors():
    handle = FakeHandle()
    await PlaywrightElement(handle).set_value("Acme")
    assert handle.calls == [("evaluate", SET_VALUE_SCRIPT, "Acme")]

    with pytest.raises(ElementWriteError):
        await PlaywrightElement(FakeHandle(fail=True)).set_value("Acme")


@pytest.mark.asyncio
async def test_events_bubble():
    handle = FakeHandle()

    await PlaywrightElement(handle).dispatch_event("change")

    assert handle.calls == [("dispatch", "change", {"bubbles": True})]


@pytest.mark.asyncio
async def test_rich_text_in_iframe_targets_the_frame_body():
    body = FakeHandle()
    iframe = FakeHandle(frame=FakeFrame(body))

    await PlaywrightElement(iframe).set_rich_text("<p>Hi</p>")

    assert iframe.calls == []
    assert body.calls == [("evaluate", SET_RICH_TEXT_SCRIPT, "<p>Hi</p>")]

    with pytest.raises(ElementWriteError):
        await PlaywrightElement(FakeHandle(frame=FakeFrame(None))).set_rich_text("<p>Hi</p>")


@pytest.mark.asyncio
async def test_query_wraps_handles_and_reports_bad_selectors():
    page = PlaywrightPage(FakePage([FakeHandle(), FakeHandle()]))

    elements = await page.query_selector_all("input")
    assert all(isinstance(element, PlaywrightElement) for element in elements)
    assert len(elements) == 2

    with pytest.raises(SelectorError) as excinfo:
        await page.query_selector_all("[[broken")
    assert excinfo.value.selector == "[[broken"


@pytest.mark.asyncio
async def test_observer_is_bound_once_and_batches_reach_the_watcher():
    raw = FakePage()
    page = PlaywrightPage(raw)
    watcher = MutationWatcher(lambda: None, debounce_ms=10_000)

    await watcher.start(page)
    await page.observe_mutations(watcher.notify)

    assert list(raw.bindings) == [MUTATION_BINDING]
    assert raw.init_scripts == [OBSERVER_SCRIPT]
    assert raw.evaluated == [OBSERVER_SCRIPT, OBSERVER_SCRIPT]

    await raw.bindings[MUTATION_BINDING]({}, {"external": 0, "selfOriginated": 2})
    assert watcher.ignored_batches == 1
    assert not watcher.pending

    await raw.bindings[MUTATION_BINDING]({}, {"external": 3, "selfOriginated": 0})
    assert watcher.pending

    await watcher.stop()
    assert not watcher.pending
