import pytest

from fieldfill.detector.detector import FieldDetector
from fieldfill.tests.stub_dom import StubElement, StubPage
from fieldfill.utils.form_components import CONTROL_SELECTOR


@pytest.mark.asyncio
async def test_strict_selector_hits_earn_the_bonus():
    typed = StubElement(type="email", name="contact")
    notes = StubElement("textarea", name="email_notes")
    page = StubPage([typed, notes])
    detector = FieldDetector()

    assert await detector.strict_matches(page, "email") == {1}

    candidates = {candidate.element: candidate for candidate in await detector.find_fields(page, "email")}

    assert candidates[typed].signals["strict_selector"] == 40.0
    assert candidates[typed].signals["type_match"] == 5.0
    assert candidates[notes].signals["strict_selector"] == 0.0
    assert typed.snapshot_calls == 1


@pytest.mark.asyncio
async def test_keys_without_selectors_query_only_the_control_selector():
    field = StubElement(name="first_name")
    page = StubPage([field])

    candidates = await FieldDetector().find_fields(page, "first_name")

    assert [candidate.element for candidate in candidates] == [field]
    assert page.queries == [CONTROL_SELECTOR]
    assert field.uid_calls == 0


@pytest.mark.asyncio
async def test_detached_strict_match_is_skipped():
    field = StubElement(type="email", name="email")
    page = StubPage([field])
    detector = FieldDetector()
    await detector.find_fields(page, "email")
    field.detached = True

    assert await detector.strict_matches(page, "email") == set()
