"""Playwright adapters for page elements.

Each adapter call is one JavaScript round-trip. Snapshots are plain
dictionaries (see :func:`fieldfill.utils.form_components.build_attribute_record`
for the schema); writes go through the native property setters so that
framework-controlled inputs notice the change, and every written element is
marked in ``window.__fieldfillSelfWrites`` before the write so the page-side
mutation observer can flag the resulting records as self-originated.
"""
from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Dict, List, Optional

from playwright.async_api import ElementHandle, Error as PlaywrightError, Page

from fieldfill.errors import ElementSnapshotError, ElementWriteError, SelectorError
from fieldfill.utils.form_components import RICH_TEXT_CLASSES

logger = logging.getLogger(__name__)

MUTATION_BINDING = "__fieldfillMutations"

_RICH_TEXT_CLASS_LIST = ", ".join(f'"{name}"' for name in RICH_TEXT_CLASSES)

_HELPERS = f"""
    const richTextClasses = [{_RICH_TEXT_CLASS_LIST}];
    const frameBody = (frame) => {{
        try {{
            return frame.contentDocument && frame.contentDocument.body;
        }} catch (err) {{
            return null;
        }}
    }};
    const isEditorFrame = (frame) => {{
        const body = frameBody(frame);
        if (!body) {{
            return false;
        }}
        if (body.isContentEditable) {{
            return true;
        }}
        return richTextClasses.some((name) => body.classList.contains(name));
    }};
    const isRichText = (el) => {{
        const tag = (el.tagName || "").toLowerCase();
        if (tag === "iframe") {{
            return isEditorFrame(el);
        }}
        if (el.isContentEditable) {{
            return true;
        }}
        return richTextClasses.some((name) => el.classList && el.classList.contains(name));
    }};
    const currentValue = (el) => {{
        const tag = (el.tagName || "").toLowerCase();
        if (tag === "input" || tag === "textarea" || tag === "select") {{
            return el.value || "";
        }}
        if (tag === "iframe") {{
            const body = frameBody(el);
            return body ? (body.innerText || "").trim() : "";
        }}
        return (el.innerText || el.textContent || "").trim();
    }};
    const layout = (el) => {{
        const rect = el.getBoundingClientRect();
        const style = window.getComputedStyle(el);
        return {{
            rect: {{
                top: rect.top,
                left: rect.left,
                bottom: rect.bottom,
                right: rect.right,
                width: rect.width,
                height: rect.height,
            }},
            style: {{
                display: style.display,
                visibility: style.visibility,
                opacity: style.opacity,
            }},
            viewport: {{
                width: window.innerWidth || document.documentElement.clientWidth,
                height: window.innerHeight || document.documentElement.clientHeight,
            }},
        }};
    }};
"""

_UID_HELPER = """
    const assignUid = (el) => {
        if (!window.__fieldfillUids) {
            window.__fieldfillUids = new WeakMap();
            window.__fieldfillNextUid = 1;
        }
        let uid = window.__fieldfillUids.get(el);
        if (uid === undefined) {
            uid = window.__fieldfillNextUid++;
            window.__fieldfillUids.set(el, uid);
        }
        return uid;
    };
"""

UID_SCRIPT = f"""
(el) => {{
    {_UID_HELPER}
    return {{ uid: assignUid(el) }};
}}
"""

SNAPSHOT_SCRIPT = f"""
(el) => {{
    {_HELPERS}
    {_UID_HELPER}
    const text = (node) => node ? (node.innerText || node.textContent || "").trim() : "";
    const uid = assignUid(el);

    const labels = {{ forLabel: "", ancestorLabel: "", siblingLabel: "" }};
    if (el.id) {{
        try {{
            labels.forLabel = text(document.querySelector(`label[for="${{CSS.escape(el.id)}}"]`));
        }} catch (err) {{
            labels.forLabel = "";
        }}
    }}
    const ancestor = el.parentElement ? el.parentElement.closest("label") : null;
    labels.ancestorLabel = text(ancestor);
    const sibling = el.previousElementSibling;
    if (sibling) {{
        const siblingTag = sibling.tagName.toLowerCase();
        const siblingClass = (sibling.className && sibling.className.toString()) || "";
        if (siblingTag === "label" || /label/i.test(siblingTag) || /label/i.test(siblingClass)) {{
            labels.siblingLabel = text(sibling);
        }}
    }}

    const form = el.closest("form");
    const dataset = {{}};
    for (const [key, value] of Object.entries(el.dataset || {{}})) {{
        dataset[key] = String(value);
    }}
    const tag = (el.tagName || "").toLowerCase();
    const options = tag === "select"
        ? Array.from(el.options).map((option) => ({{ value: option.value, label: text(option) || option.label || "" }}))
        : [];

    return {{
        uid,
        tag,
        type: tag === "input" ? (el.getAttribute("type") || "text").toLowerCase() : "",
        name: el.getAttribute("name") || "",
        id: el.id || "",
        placeholder: el.getAttribute("placeholder") || "",
        className: (el.className && el.className.toString()) || "",
        value: currentValue(el),
        ariaLabel: el.getAttribute("aria-label") || "",
        dataset,
        labels,
        form: form ? {{ id: form.id || "", className: (form.className && form.className.toString()) || "" }} : null,
        disabled: !!el.disabled,
        readOnly: !!el.readOnly,
        checked: (el.type === "checkbox" || el.type === "radio") ? !!el.checked : null,
        contentEditable: !!el.isContentEditable,
        richTextFrame: tag === "iframe" ? isEditorFrame(el) : false,
        options,
        ...layout(el),
    }};
}}
"""

LIVE_STATE_SCRIPT = f"""
(el) => {{
    {_HELPERS}
    return {{
        connected: el.isConnected,
        disabled: !!el.disabled,
        readOnly: !!el.readOnly,
        value: currentValue(el),
        checked: (el.type === "checkbox" || el.type === "radio") ? !!el.checked : null,
        options: (el.tagName || "").toLowerCase() === "select"
            ? Array.from(el.options).map((option) => ({{ value: option.value, label: (option.textContent || "").trim() }}))
            : [],
        ...layout(el),
    }};
}}
"""

_MARK_SELF_WRITE = """
    if (!window.__fieldfillSelfWrites) {
        window.__fieldfillSelfWrites = new WeakSet();
    }
    window.__fieldfillSelfWrites.add(el);
"""

SET_VALUE_SCRIPT = f"""
(el, value) => {{
    {_MARK_SELF_WRITE}
    const proto = el instanceof HTMLTextAreaElement ? HTMLTextAreaElement.prototype : HTMLInputElement.prototype;
    const descriptor = Object.getOwnPropertyDescriptor(proto, "value");
    if (descriptor && descriptor.set) {{
        descriptor.set.call(el, value);
    }} else {{
        el.value = value;
    }}
    return el.value;
}}
"""

SELECT_OPTION_SCRIPT = f"""
(el, value) => {{
    {_MARK_SELF_WRITE}
    const descriptor = Object.getOwnPropertyDescriptor(HTMLSelectElement.prototype, "value");
    if (descriptor && descriptor.set) {{
        descriptor.set.call(el, value);
    }} else {{
        el.value = value;
    }}
    return el.value;
}}
"""

SET_CHECKED_SCRIPT = f"""
(el, checked) => {{
    {_MARK_SELF_WRITE}
    const descriptor = Object.getOwnPropertyDescriptor(HTMLInputElement.prototype, "checked");
    if (descriptor && descriptor.set) {{
        descriptor.set.call(el, checked);
    }} else {{
        el.checked = checked;
    }}
    return el.checked;
}}
"""

SET_RICH_TEXT_SCRIPT = f"""
(el, html) => {{
    {_MARK_SELF_WRITE}
    el.innerHTML = html;
    return (el.innerText || el.textContent || "").trim();
}}
"""

OBSERVER_SCRIPT = f"""
(() => {{
    if (window.__fieldfillObserver) {{
        return;
    }}
    const start = () => {{
        if (window.__fieldfillObserver || !document.documentElement) {{
            return;
        }}
        const observer = new MutationObserver((records) => {{
            const marks = window.__fieldfillSelfWrites;
            let external = 0;
            let own = 0;
            for (const record of records) {{
                let node = record.target;
                let mine = false;
                while (node && marks) {{
                    if (marks.has(node)) {{
                        mine = true;
                        break;
                    }}
                    node = node.parentNode;
                }}
                if (mine) {{
                    own += 1;
                }} else {{
                    external += 1;
                }}
            }}
            if (typeof window.{MUTATION_BINDING} === "function") {{
                window.{MUTATION_BINDING}({{ external, selfOriginated: own }});
            }}
        }});
        observer.observe(document.documentElement, {{
            subtree: true,
            childList: true,
            attributes: true,
            characterData: true,
        }});
        window.__fieldfillObserver = observer;
    }};
    if (document.documentElement) {{
        start();
    }} else {{
        document.addEventListener("DOMContentLoaded", start, {{ once: true }});
    }}
}})()
"""

DISCONNECT_SCRIPT = """
() => {
    if (window.__fieldfillObserver) {
        window.__fieldfillObserver.disconnect();
        window.__fieldfillObserver = null;
    }
}
"""

MutationCallback = Callable[[int, int], Any]


class PlaywrightElement:
    """Element adapter around a Playwright :class:`ElementHandle`."""

    def __init__(self, handle: ElementHandle) -> None:
        self._handle = handle

    @property
    def handle(self) -> ElementHandle:
        return self._handle

    async def _evaluate_read(self, script: str) -> Dict[str, Any]:
        try:
            result = await self._handle.evaluate(script)
        except PlaywrightError as exc:
            raise ElementSnapshotError(f"Element could not be read: {exc}") from exc
        return result or {}

    async def _evaluate_write(self, script: str, arg: Any, target: Optional[ElementHandle] = None) -> Any:
        handle = target or self._handle
        try:
            return await handle.evaluate(script, arg)
        except PlaywrightError as exc:
            raise ElementWriteError(f"Element write failed: {exc}") from exc

    async def snapshot(self) -> Dict[str, Any]:
        return await self._evaluate_read(SNAPSHOT_SCRIPT)

    async def uid(self) -> Optional[int]:
        """Page-assigned uid, the same one :meth:`snapshot` reports, without a full snapshot."""
        uid = (await self._evaluate_read(UID_SCRIPT)).get("uid")
        return int(uid) if isinstance(uid, (int, float)) else None

    async def live_state(self) -> Dict[str, Any]:
        state = await self._evaluate_read(LIVE_STATE_SCRIPT)
        if not state.get("connected", True):
            raise ElementSnapshotError("Element is no longer attached to the document")
        return state

    async def set_value(self, value: str) -> None:
        await self._evaluate_write(SET_VALUE_SCRIPT, value)

    async def select_option(self, value: str) -> None:
        await self._evaluate_write(SELECT_OPTION_SCRIPT, value)

    async def set_checked(self, checked: bool) -> None:
        await self._evaluate_write(SET_CHECKED_SCRIPT, checked)

    async def set_rich_text(self, html: str) -> None:
        """Write inner content of a contenteditable container or an editor iframe's body."""

        target = self._handle
        try:
            frame = await self._handle.content_frame()
            if frame is not None:
                body = await frame.query_selector("body")
                if body is None:
                    raise ElementWriteError("Editor frame has no body")
                target = body
        except PlaywrightError as exc:
            raise ElementWriteError(f"Editor frame unavailable: {exc}") from exc
        await self._evaluate_write(SET_RICH_TEXT_SCRIPT, html, target=target)

    async def dispatch_event(self, event_type: str) -> None:
        try:
            await self._handle.dispatch_event(event_type, {"bubbles": True})
        except PlaywrightError as exc:
            raise ElementWriteError(f"Could not dispatch {event_type!r}: {exc}") from exc


class PlaywrightPage:
    """Page adapter: selector queries and the mutation observer bridge."""

    def __init__(self, page: Page) -> None:
        self._page = page
        self._callback: Optional[MutationCallback] = None
        self._bound = False

    @property
    def page(self) -> Page:
        return self._page

    @property
    def url(self) -> str:
        return self._page.url

    async def query_selector_all(self, selector: str) -> List[PlaywrightElement]:
        try:
            handles = await self._page.query_selector_all(selector)
        except PlaywrightError as exc:
            raise SelectorError(selector, str(exc)) from exc
        return [PlaywrightElement(handle) for handle in handles]

    async def _on_mutations(self, source: Dict[str, Any], payload: Dict[str, Any]) -> None:
        if self._callback is None:
            return
        external = int(payload.get("external", 0) or 0)
        self_originated = int(payload.get("selfOriginated", 0) or 0)
        result = self._callback(external, self_originated)
        if inspect.isawaitable(result):
            await result

    async def observe_mutations(self, callback: MutationCallback) -> None:
        """Install the page-side observer and route its batches to ``callback``.

        The observer is re-installed on every navigation through an init script.
        """

        self._callback = callback
        if not self._bound:
            await self._page.expose_binding(MUTATION_BINDING, self._on_mutations)
            await self._page.add_init_script(OBSERVER_SCRIPT)
            self._bound = True
        await self._page.evaluate(OBSERVER_SCRIPT)
        logger.debug(f"Mutation observer installed on {self._page.url}")

    async def stop_observing(self) -> None:
        self._callback = None
        if self._page.is_closed():
            return
        try:
            await self._page.evaluate(DISCONNECT_SCRIPT)
        except PlaywrightError as exc:
            logger.debug(f"Mutation observer disconnect failed: {exc}")
