import asyncio
import json

import pytest

from fieldfill.autofill.engine import AutofillEngine, StaticValueSource
from fieldfill.config import ScanOptions
from fieldfill.detector.detector import FieldDetector
from fieldfill.tests.stub_dom import StubElement, StubPage


@pytest.mark.asyncio
async def test_email_goes_to_enabled_field_and_never_to_disabled_one():
    enabled = StubElement(type="email", name="user_email")
    disabled = StubElement(name="email_backup", disabled=True)
    source = StaticValueSource({"email": "a@b.com"})
    engine = AutofillEngine(StubPage([enabled, disabled]), source)

    summary = await engine.run_pass()

    report = summary.report_for("email")
    assert report.filled
    assert report.element_descriptor == 'input[name="user_email"][type="email"]'
    assert report.score == pytest.approx(125.0)
    assert enabled.value == "a@b.com"
    assert disabled.writes == []
    assert disabled.live_state_calls == 0
    assert (summary.filled_count, summary.total_attempted) == (1, 1)
    assert source.loads == 1


@pytest.mark.asyncio
async def test_empty_company_field_wins_the_tie():
    filled = StubElement(placeholder="Company Name", value="Acme")
    empty = StubElement(placeholder="Company Name")
    engine = AutofillEngine(
        StubPage([filled, empty]),
        StaticValueSource({"company": "Bright Windows"}),
        options=ScanOptions(prioritize_empty=True),
    )

    summary = await engine.run_pass()

    assert summary.report_for("company").filled
    assert empty.value == "Bright Windows"
    assert filled.value == "Acme"
    assert filled.writes == []


@pytest.mark.asyncio
async def test_failed_write_falls_through_to_next_candidate():
    broken = StubElement(type="email", name="email")
    backup = StubElement(type="email", name="contact_email")
    broken.fail_writes = True
    engine = AutofillEngine(StubPage([broken, backup]), StaticValueSource({"email": "a@b.com"}))

    report = (await engine.run_pass()).report_for("email")

    assert report.filled
    assert "contact_email" in report.element_descriptor
    assert backup.value == "a@b.com"


@pytest.mark.asyncio
async def test_one_element_is_filled_for_one_key_per_pass():
    only = StubElement(name="first_name", placeholder="Full name")
    engine = AutofillEngine(StubPage([only]), StaticValueSource({"first_name": "Ada", "full_name": "Ada Lovelace"}))

    summary = await engine.run_pass()

    assert summary.report_for("first_name").filled
    full_name = summary.report_for("full_name")
    assert not full_name.filled
    assert full_name.detail == "matching fields already filled"
    assert only.value == "Ada"


@pytest.mark.asyncio
async def test_invalid_and_empty_values_are_skipped():
    field = StubElement(type="email", name="email")
    engine = AutofillEngine(StubPage([field]), StaticValueSource({"email": "not-an-email", "phone": ""}))

    summary = await engine.run_pass()

    assert [report.key for report in summary.reports] == ["email"]
    assert summary.reports[0].detail == "invalid value"
    assert not summary.reports[0].attempted
    assert field.writes == []


@pytest.mark.asyncio
async def test_missing_field_is_reported_without_attempt():
    engine = AutofillEngine(StubPage([StubElement(name="company")]), StaticValueSource({"email": "a@b.com"}))

    report = (await engine.run_pass()).report_for("email")

    assert not report.attempted
    assert report.detail == "no matching field"


@pytest.mark.asyncio
async def test_social_keys_fall_back_to_stored_links():
    field = StubElement(type="url", name="facebook_url")
    values = {
        "facebook": "",
        "social_links": [{"platform": "Facebook", "url": "https://facebook.com/acme"}],
    }
    engine = AutofillEngine(StubPage([field]), StaticValueSource(values))

    summary = await engine.run_pass()

    assert summary.report_for("facebook").filled
    assert field.value == "https://facebook.com/acme"


@pytest.mark.asyncio
async def test_mutation_pass_invalidates_the_cache():
    field = StubElement(type="email", name="email")
    engine = AutofillEngine(StubPage([field]), StaticValueSource({"email": "a@b.com"}))

    await engine.run_pass()
    await engine.run_pass()
    assert field.snapshot_calls == 1

    await engine.run_pass(invalidate=True)
    assert field.snapshot_calls == 2
    assert field.writes == [("value", "a@b.com")]


@pytest.mark.asyncio
async def test_watch_reruns_after_page_mutations():
    field = StubElement(type="email", name="email")
    page = StubPage([field])
    source = StaticValueSource({"email": "a@b.com"})
    engine = AutofillEngine(
        page,
        source,
        detector=FieldDetector(),
        options=ScanOptions(debounce_ms=20),
    )

    await engine.run_pass()
    await engine.watch()
    field.state["value"] = ""
    page.emit(external=1)
    await asyncio.sleep(0.15)
    await engine.stop()

    assert source.loads == 2
    assert field.value == "a@b.com"
    assert field.snapshot_calls == 2
    assert engine.last_summary.filled_count == 1


def test_static_value_source_reads_json(tmp_path):
    path = tmp_path / "values.json"
    path.write_text(json.dumps({"email": "a@b.com"}), encoding="utf-8")

    assert StaticValueSource.from_file(path).values == {"email": "a@b.com"}

    path.write_text("[]", encoding="utf-8")
    with pytest.raises(ValueError):
        StaticValueSource.from_file(path)


@pytest.mark.asyncio
async def test_radio_group_options_are_separate_candidates():
    male = StubElement(type="radio", name="gender", value="male")
    female = StubElement(type="radio", name="gender", value="female")
    engine = AutofillEngine(StubPage([male, female]), StaticValueSource({"gender": "female"}))

    report = (await engine.run_pass()).report_for("gender")

    assert report.filled
    assert female.checked is True
    assert male.checked is False


@pytest.mark.asyncio
async def test_phone_number_is_not_written_into_hotel_name():
    hotel = StubElement(name="hotel_name")
    engine = AutofillEngine(StubPage([hotel]), StaticValueSource({"phone": "+1 555 0100"}))

    report = (await engine.run_pass()).report_for("phone")

    assert not report.attempted
    assert report.detail == "no matching field"
    assert hotel.writes == []
