"""Base/variant extraction and row field resolution."""

import pytest

from card_matcher import (
    FieldResolver,
    extract_identity,
    infer_variant,
    literal_variant,
    split_list,
    strip_parenthetical,
)


@pytest.mark.parametrize("raw, base, variant", [
    ("HDFC Regalia (Visa Signature)", "HDFC Regalia", "Visa Signature"),
    ("HDFC Regalia(Visa Signature)  ", "HDFC Regalia", "Visa Signature"),
    ("ICICI Amazon Pay", "ICICI Amazon Pay", None),
    ("Axis Atlas ( Visa Infinite )", "Axis Atlas", "Visa Infinite"),
    ("Axis Atlas (Visa) (Infinite)", "Axis Atlas", "Infinite"),
    ("SBI (Elite) Card", "SBI (Elite) Card", None),
    ("Empty Parens ()", "Empty Parens", None),
    ("", "", None),
])
def test_extract_identity(raw, base, variant):
    parts = extract_identity(raw)
    assert parts.base == base
    assert parts.literal_variant == variant
    assert parts.inferred_variant is None


@pytest.mark.parametrize("raw", [
    "HDFC Regalia (Visa Signature)",
    "Axis Atlas (Visa) (Infinite)",
    "Nested (a (b))",
    "Plain Card",
    "   ",
])
def test_extract_identity_base_is_stable(raw):
    base = extract_identity(raw).base
    assert not base.endswith(")") or strip_parenthetical(base) == base
    assert extract_identity(base).base == base
    assert literal_variant(base) is None or strip_parenthetical(base) == base


@pytest.mark.parametrize("raw, expected", [
    ("SBI Elite Visa Signature", "Visa Signature"),
    ("Axis Rupay Card", "RuPay"),
    ("Amex Platinum Travel", "Amex Platinum"),
    ("American Express Gold", "Amex Gold"),
    ("Axis Select Credit Card", "Select"),
    ("HDFC Regalia", None),
])
def test_infer_variant(raw, expected):
    assert infer_variant(raw) == expected


def test_inference_never_overrides_literal_variant():
    parts = extract_identity("SBI Elite Visa (Mastercard World)", infer=True)
    assert parts.literal_variant == "Mastercard World"
    assert parts.inferred_variant is None
    assert parts.variant == "Mastercard World"


def test_inference_fills_separate_field():
    parts = extract_identity("SBI Elite Visa Signature", infer=True)
    assert parts.base == "SBI Elite Visa Signature"
    assert parts.literal_variant is None
    assert parts.inferred_variant == "Visa Signature"
    assert parts.variant == "Visa Signature"


@pytest.mark.parametrize("cell, expected", [
    ("HDFC Regalia (Visa Signature), ICICI Amazon Pay", ["HDFC Regalia (Visa Signature)", "ICICI Amazon Pay"]),
    ("Axis Atlas,\nSBI Elite", ["Axis Atlas", "SBI Elite"]),
    ("Axis\nAtlas", ["Axis Atlas"]),
    (" , ,", []),
    ("", []),
    (None, []),
])
def test_split_list(cell, expected):
    assert split_list(cell) == expected


def test_field_resolver_uses_first_non_blank_alias():
    resolver = FieldResolver()
    row = {"Offer Title": "  ", "Title": "Flat 10% off", "Offer": "ignored"}
    assert resolver.get(row, "title") == "Flat 10% off"


def test_field_resolver_missing_field_is_none():
    resolver = FieldResolver()
    assert resolver.get({"Title": "x"}, "coupon") is None
    assert resolver.get({}, "title") is None
    assert resolver.get(None, "title") is None
    assert resolver.get({"Coupon": float("nan")}, "coupon") is None
    assert resolver.get_list({"Title": "x"}, "credit") == []


def test_field_resolver_custom_schema():
    resolver = FieldResolver({"title": ["Headline"]})
    assert resolver.get({"Headline": "Big sale", "Title": "other"}, "title") == "Big sale"
    with pytest.raises(KeyError):
        resolver.get({"Headline": "x"}, "credit")
