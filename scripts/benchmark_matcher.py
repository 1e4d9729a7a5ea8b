"""
Micro-benchmark for card_matcher.py.

Tests:
1. normalize_text() on typical card names (hot path, cached)
2. build_candidate_index() on synthetic portal sheets
3. build_suggestions() per keystroke, both ranking policies
4. collect_offers() for a selected card across every sheet

Usage:
    python scripts/benchmark_matcher.py
"""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))
import time
import numpy as np
from card_matcher import (
    CARD_TYPE_CREDIT, RANK_POLICY_CONTAINMENT, RANK_POLICY_WEIGHTED,
    SOURCE_KIND_OFFERS, SOURCE_KIND_PERMANENT, Source,
    build_candidate_index, build_suggestions, collect_offers, normalize_text,
)

BANKS = ['HDFC', 'ICICI', 'SBI', 'Axis', 'Kotak', 'IDFC First', 'AU', 'RBL', 'Yes', 'HSBC']
PRODUCTS = ['Regalia', 'Millennia', 'Amazon Pay', 'Sapphiro', 'Elite', 'Atlas', 'Select',
            'Zenith', 'Shoprite', 'Marquee', 'Platinum', 'Cashback', 'Infinia', 'Coral']
VARIANTS = ['', ' (Visa Signature)', ' (Mastercard World)', ' (RuPay)', ' (Visa Infinite)']
UPI_APPS = ['Google Pay', 'PhonePe', 'Paytm', 'BHIM', 'Amazon Pay UPI']
PORTALS = ['Goibibo', 'EaseMyTrip', 'Yatra (Domestic)', 'Yatra (International)',
           'Ixigo', 'MakeMyTrip', 'ClearTrip']

rng = np.random.default_rng(42)


def _card_names(n: int):
    banks = rng.choice(BANKS, n)
    products = rng.choice(PRODUCTS, n)
    variants = rng.choice(VARIANTS, n)
    return [f"{b} {p}{v}" for b, p, v in zip(banks, products, variants)]


def generate_synthetic_sources(rows_per_source: int = 500):
    """Permanent sheet plus one offer sheet per portal, priority order."""
    permanent_rows = tuple(
        {"Credit Card Name": name, "Flight Benefit": "Complimentary lounge access",
         "Link": f"https://bank.example.com/cards/{i}"}
        for i, name in enumerate(_card_names(rows_per_source // 5))
    )
    sources = [Source("Permanent", permanent_rows, SOURCE_KIND_PERMANENT, "Permanent Offers")]

    for portal in PORTALS:
        rows = []
        for i in range(rows_per_source):
            # Roughly a third of offers are re-posted on another portal
            offer_id = int(rng.integers(0, rows_per_source * 2))
            rows.append({
                "Offer Title": f"Flat {offer_id % 20 + 5}% off",
                "Details": f"Offer {offer_id} on domestic flights",
                "Eligible Credit Cards": ", ".join(_card_names(int(rng.integers(1, 6)))),
                "Eligible Debit Cards": ", ".join(f"{n} Debit" for n in _card_names(int(rng.integers(0, 3)))),
                "Eligible UPI": ", ".join(rng.choice(UPI_APPS, int(rng.integers(0, 3)), replace=False)),
                "Eligible NetBanking": ", ".join(rng.choice(BANKS, int(rng.integers(0, 3)), replace=False)),
                "Offer Link": f"https://offers.example.com/{offer_id}",
            })
        sources.append(Source(portal, tuple(rows), SOURCE_KIND_OFFERS, f"Offers on {portal}"))
    return sources


def benchmark_function(func, *args, **kwargs):
    """Benchmark a function and return (result, elapsed_ms)."""
    start = time.perf_counter()
    result = func(*args, **kwargs)
    end = time.perf_counter()
    elapsed_ms = (end - start) * 1000
    return result, elapsed_ms


def benchmark_normalize_text(n_iterations: int = 10000):
    """Benchmark normalize_text() on hot path."""
    test_strings = [
        "HDFC Regalia (Visa Signature)",
        "IDFC-First Wealth_Credit Card",
        "Yes\u2014Bank \u00abMarquee\u00bb",
        "ICICI Amazon Pay (Visa Platinum) (Co-branded)",
    ]

    print("\n" + "="*70)
    print("BENCHMARK: normalize_text() - Hot Path")
    print("="*70)

    for test_str in test_strings:
        start = time.perf_counter()
        for _ in range(n_iterations):
            _ = normalize_text(test_str)
        end = time.perf_counter()

        elapsed_ms = (end - start) * 1000
        per_call_us = elapsed_ms * 1000 / n_iterations

        print(f"\nInput: {test_str}")
        print(f"  Total: {elapsed_ms:.2f}ms ({n_iterations} calls)")
        print(f"  Per call: {per_call_us:.2f}μs")


def benchmark_build_index(sources):
    print("\n" + "="*70)
    print("BENCHMARK: build_candidate_index() - All Sheets")
    print("="*70)

    index, elapsed = benchmark_function(build_candidate_index, sources)
    rows = index.stats['rows_scanned']
    print(f"\n  Rows scanned: {rows}")
    print(f"  Card mentions: {index.stats['mentions']}")
    print(f"  Identities: {index.stats['identities']}")
    print(f"  Index time: {elapsed:.2f}ms")
    print(f"  Indexing rate: {rows / (elapsed / 1000):.0f} rows/sec")
    return index


def benchmark_suggestions(index):
    """Simulate typing a card name one keystroke at a time."""
    print("\n" + "="*70)
    print("BENCHMARK: build_suggestions() - Per Keystroke")
    print("="*70)

    typed = "hdfc regalia"
    for policy in (RANK_POLICY_CONTAINMENT, RANK_POLICY_WEIGHTED):
        timings = []
        for end in range(1, len(typed) + 1):
            _, elapsed = benchmark_function(build_suggestions, typed[:end], index, policy=policy)
            timings.append(elapsed)
        print(f"\nPolicy: {policy}")
        print(f"  Keystrokes: {len(timings)}")
        print(f"  Mean: {np.mean(timings):.2f}ms  p95: {np.percentile(timings, 95):.2f}ms  max: {max(timings):.2f}ms")


def benchmark_collect_offers(index, sources, n_cards: int = 50):
    print("\n" + "="*70)
    print(f"BENCHMARK: collect_offers() - {n_cards} Selected Credit Cards")
    print("="*70)

    cards = index.for_type(CARD_TYPE_CREDIT)[:n_cards]
    timings = []
    offers_shown = []
    for card in cards:
        sections, elapsed = benchmark_function(collect_offers, card, sources)
        timings.append(elapsed)
        offers_shown.append(sum(len(s.wrappers) for s in sections))

    print(f"\n  Mean: {np.mean(timings):.2f}ms per card")
    print(f"  Max: {max(timings):.2f}ms")
    print(f"  Offers per card: mean {np.mean(offers_shown):.1f}, max {max(offers_shown)}")


def main():
    """Run all benchmarks."""
    print("="*70)
    print("CARD_MATCHER.PY PERFORMANCE BENCHMARK")
    print("="*70)

    print("\nGenerating synthetic sheets (8 sources)...")
    sources = generate_synthetic_sources(500)

    benchmark_normalize_text(10000)
    index = benchmark_build_index(sources)
    benchmark_suggestions(index)
    benchmark_collect_offers(index, sources)

    print("\n" + "="*70)
    print("BENCHMARK COMPLETE")
    print("="*70)


if __name__ == '__main__':
    main()
