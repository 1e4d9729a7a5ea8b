"""Shared fixtures for matcher tests."""

import sys
from pathlib import Path

import pytest


def ensure_src_on_path() -> None:
    src_path = Path(__file__).resolve().parent.parent / "src"
    if str(src_path) not in sys.path:
        sys.path.insert(0, str(src_path))


ensure_src_on_path()

from card_matcher import SOURCE_KIND_OFFERS, SOURCE_KIND_PERMANENT, Source  # noqa: E402


@pytest.fixture
def portal_sources():
    """Three sources with different header spellings, priority order as listed."""
    permanent = Source(
        name="Permanent",
        kind=SOURCE_KIND_PERMANENT,
        heading="Permanent Offers",
        rows=(
            {"Credit Card Name": "HDFC Regalia (Visa Signature)", "Flight Benefit": "Lounge access",
             "Link": "https://hdfc.com/regalia"},
            {"Credit Card Name": "Axis Atlas", "Flight Benefit": "5 miles per 100",
             "Link": "https://axis.com/atlas"},
        ),
    )
    goibibo = Source(
        name="Goibibo",
        kind=SOURCE_KIND_OFFERS,
        heading="Offers on Goibibo",
        rows=(
            {"Offer Title": "Flat 10% off", "Details": "On domestic flights",
             "Eligible Credit Cards": "HDFC Regalia (Visa Signature), ICICI Amazon Pay",
             "Applicable Debit Cards": "HDFC Millennia Debit",
             "Offer Link": "https://Site.com/offer/", "Coupon Code": "GOHDFC"},
            {"Offer Title": "UPI cashback", "Details": "Hotels",
             "Eligible UPI": "Google Pay, PhonePe", "Offer Link": "https://goibibo.com/upi"},
        ),
    )
    makemytrip = Source(
        name="MakeMyTrip",
        kind=SOURCE_KIND_OFFERS,
        heading="Offers on MakeMyTrip",
        rows=(
            {"Title": "Flat 10% off", "Description": "On domestic flights",
             "Eligible Cards": "Hdfc Regalia, Axis Select Credit Card",
             "Link": "http://www.site.com/Offer"},
            {"Title": "Makemytrip ICICI weekend", "Description": "International hotels",
             "Eligible Cards": "ICICI Sapphiro (Mastercard)",
             "Eligible NetBanking": "SBI, HDFC",
             "Link": "https://makemytrip.com/icici"},
        ),
    )
    return [permanent, goibibo, makemytrip]
