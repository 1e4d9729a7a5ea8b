"""Offer fingerprints, cross-source dedupe and the offer pipeline."""

from card_matcher import (
    FINGERPRINT_SEPARATOR,
    CardIdentity,
    MatchWrapper,
    Source,
    collect_offers,
    dedupe_wrappers,
    no_offers_html,
    normalize_text,
    offer_fingerprint,
    present_offer,
    variant_note_html,
)


def card(display, card_type="credit"):
    return CardIdentity(type=card_type, display=display, base=display, base_norm=normalize_text(display))


def wrap(row, site):
    return MatchWrapper(offer=row, site=site)


def test_fingerprint_ignores_url_case_scheme_and_trailing_slash():
    a = {"Title": "Flat 10% off", "Link": "https://Site.com/offer/"}
    b = {"Offer Title": "Flat 10% off", "Offer Link": "http://www.site.com/offer"}
    assert offer_fingerprint(a) == offer_fingerprint(b)


def test_fingerprint_parts_and_title_fallback():
    row = {"Website": "Goibibo", "Details": "Up to 10%", "Image": "https://x.com/a.png", "Link": "x.com/go"}
    assert offer_fingerprint(row) == FINGERPRINT_SEPARATOR.join(["goibibo", "up to 10", "x.com/a.png", "x.com/go"])


def test_fingerprint_differs_on_description():
    a = {"Title": "Flat 10% off", "Description": "Flights"}
    b = {"Title": "Flat 10% off", "Description": "Hotels"}
    assert offer_fingerprint(a) != offer_fingerprint(b)


def test_dedupe_keeps_first_by_priority():
    same_a = {"Title": "Flat 10% off", "Link": "https://Site.com/offer/"}
    same_b = {"Title": "Flat 10% off", "Link": "https://site.com/offer"}
    only_b = {"Title": "Other", "Link": "https://site.com/other"}

    a_first = dedupe_wrappers([[wrap(same_a, "A")], [wrap(same_b, "B"), wrap(only_b, "B")]])
    b_first = dedupe_wrappers([[wrap(same_b, "B"), wrap(only_b, "B")], [wrap(same_a, "A")]])

    assert [w.site for w in a_first[0]] == ["A"]
    assert [w.offer["Title"] for w in a_first[1]] == ["Other"]
    assert [len(lst) for lst in b_first] == [2, 0]

    # membership is order independent, attribution is not
    kept_a = {offer_fingerprint(w.offer) for lst in a_first for w in lst}
    kept_b = {offer_fingerprint(w.offer) for lst in b_first for w in lst}
    assert kept_a == kept_b


def test_dedupe_within_a_single_list_and_shared_seen_set():
    row = {"Title": "Flat 10% off"}
    seen = set()
    first = dedupe_wrappers([[wrap(row, "A"), wrap(dict(row), "A")]], seen=seen)
    second = dedupe_wrappers([[wrap(row, "B")]], seen=seen)
    assert len(first[0]) == 1
    assert second == [[]]
    assert len(seen) == 1


def test_collect_offers_for_credit_card(portal_sources):
    sections = collect_offers(card("HDFC Regalia"), portal_sources)

    assert [s.source for s in sections] == ["Permanent", "Goibibo"]
    assert sections[0].is_permanent is True
    assert sections[0].heading == "Permanent Offers"
    # MakeMyTrip's copy of "Flat 10% off" is attributed to Goibibo only
    assert [w.offer["Offer Title"] for w in sections[1].wrappers] == ["Flat 10% off"]
    assert sections[1].wrappers[0].variant_text == "Visa Signature"


def test_collect_offers_skips_permanent_for_non_credit(portal_sources):
    debit_named_like_permanent = card("HDFC Regalia", card_type="debit")
    assert collect_offers(debit_named_like_permanent, portal_sources) == []

    netbanking = collect_offers(card("SBI", card_type="netbanking"), portal_sources)
    assert [s.source for s in netbanking] == ["MakeMyTrip"]


def test_collect_offers_survives_failed_source(portal_sources):
    failed = Source("Ixigo", (), heading="Offers on Ixigo", error="OSError: missing file")
    sections = collect_offers(card("Axis Select Credit Card"), [failed] + portal_sources)
    assert [s.source for s in sections] == ["MakeMyTrip"]


def test_collect_offers_without_selection():
    assert collect_offers(None, []) == []


def test_present_offer_resolves_fields(portal_sources):
    sections = collect_offers(card("HDFC Regalia"), portal_sources)
    permanent_view = present_offer(sections[0].wrappers[0], is_permanent=True)
    portal_view = present_offer(sections[1].wrappers[0])

    assert permanent_view.title == "Offer"
    assert permanent_view.description == "Lounge access"
    assert permanent_view.is_permanent is True
    assert permanent_view.show_variant_note is True

    assert portal_view.title == "Flat 10% off"
    assert portal_view.description == "On domestic flights"
    assert portal_view.coupon == "GOHDFC"
    assert portal_view.link == "https://Site.com/offer/"
    assert portal_view.show_variant_note is True
    assert portal_view.variant_text == "Visa Signature"


def test_sheet_text_is_escaped_in_html_notes():
    wrapper = MatchWrapper(offer={"Title": "Deal"}, site="Goibibo", variant_text="<b>Visa</b> & Co")
    view = present_offer(wrapper)
    note = variant_note_html(view)
    assert "&lt;b&gt;Visa&lt;/b&gt; &amp; Co" in note
    assert "<b>" not in note

    message = no_offers_html(card("<img src=x onerror=alert(1)>"))
    assert "<img" not in message
    assert "&lt;img src=x onerror=alert(1)&gt;" in message
