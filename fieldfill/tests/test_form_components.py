import pytest

from fieldfill.tests.stub_dom import COLLAPSED_RECT, OFFSCREEN_RECT, VIEWPORT, VISIBLE_RECT, StubElement, make_snapshot
from fieldfill.utils.form_components import (
    FieldShape,
    Visibility,
    build_attribute_record,
    classify_visibility,
    extract_attributes,
    resolve_label,
    resolve_shape,
)


@pytest.mark.parametrize(
    "snapshot, expected",
    [
        (make_snapshot("input", type="text"), FieldShape.TEXT_INPUT),
        (make_snapshot("input", type="email"), FieldShape.TEXT_INPUT),
        (make_snapshot("textarea"), FieldShape.TEXT_INPUT),
        (make_snapshot("select"), FieldShape.SELECT),
        (make_snapshot("input", type="checkbox"), FieldShape.CHECKBOX),
        (make_snapshot("input", type="radio"), FieldShape.RADIO),
        (make_snapshot("div", content_editable=True), FieldShape.RICH_TEXT),
        (make_snapshot("body", class_name="mceContentBody"), FieldShape.RICH_TEXT),
        (make_snapshot("iframe", rich_text_frame=True), FieldShape.RICH_TEXT),
    ],
)
def test_resolve_shape_supported(snapshot, expected):
    assert resolve_shape(snapshot) is expected


@pytest.mark.parametrize(
    "snapshot",
    [
        make_snapshot("input", type="submit"),
        make_snapshot("input", type="file"),
        make_snapshot("input", type="range"),
        make_snapshot("button"),
        make_snapshot("div"),
        make_snapshot("iframe"),
    ],
)
def test_unsupported_elements_are_not_extracted(snapshot):
    assert resolve_shape(snapshot) is None
    assert build_attribute_record(snapshot) is None


def test_resolve_label_strategy_order():
    labels = {"forLabel": "", "ancestorLabel": "  Work\n email ", "siblingLabel": "Email"}

    assert resolve_label(labels) == ("Work email", "ancestorLabel")
    assert resolve_label({"forLabel": "E-mail", "siblingLabel": "Email"}) == ("E-mail", "forLabel")
    assert resolve_label(None) == ("", "")


@pytest.mark.parametrize(
    "rect, style, expected",
    [
        (VISIBLE_RECT, {}, Visibility.VISIBLE),
        (OFFSCREEN_RECT, {}, Visibility.OFFSCREEN),
        (COLLAPSED_RECT, {}, Visibility.HIDDEN),
        (VISIBLE_RECT, {"display": "none"}, Visibility.HIDDEN),
        (VISIBLE_RECT, {"visibility": "hidden"}, Visibility.HIDDEN),
        (VISIBLE_RECT, {"opacity": "0"}, Visibility.HIDDEN),
        (None, {}, Visibility.HIDDEN),
    ],
)
def test_classify_visibility(rect, style, expected):
    assert classify_visibility(rect, style, VIEWPORT) is expected


def test_build_attribute_record_maps_snapshot_fields():
    snapshot = make_snapshot(
        "input",
        type="email",
        name="user_email",
        id="email",
        placeholder="you@example.com",
        dataset={"field": "email"},
        labels={"forLabel": "Email address"},
        form={"id": "signup", "className": "form wide"},
        uid=7,
    )

    record = build_attribute_record(snapshot)

    assert record.tag == "input"
    assert record.shape is FieldShape.TEXT_INPUT
    assert record.element_id == "email"
    assert record.label_text == "Email address"
    assert record.label_source == "forLabel"
    assert record.form_context.text == "signup form wide"
    assert record.data_hint("field") == "email"
    assert record.is_empty
    assert record.identity == ("input", "user_email", "email")
    assert record.describe() == 'input#email[name="user_email"][type="email"]'


def test_anonymous_records_keep_distinct_identities():
    first = build_attribute_record(make_snapshot(placeholder="Company Name", uid=1))
    second = build_attribute_record(make_snapshot(placeholder="Company Name", uid=2))

    assert first.identity != second.identity
    assert not first.has_identifier


def test_select_options_are_collected():
    record = build_attribute_record(
        make_snapshot("select", name="country", options=[{"value": "us", "label": "United States"}])
    )

    assert record.options[0].value == "us"
    assert record.options[0].label == "United States"


@pytest.mark.asyncio
async def test_extract_attributes_skips_detached_elements():
    element = StubElement(name="email")
    assert (await extract_attributes(element)).name == "email"

    element.detached = True
    assert await extract_attributes(element) is None
