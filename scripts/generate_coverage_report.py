"""
Offer Coverage Report Generator

For every card, UPI app and NetBanking bank found in the offer sheets, counts
how many offers each source contributes after cross-source deduplication.
Useful for spotting misspelled card names that never match anything, and
portals that only re-post offers already listed elsewhere.

Usage:
    python generate_coverage_report.py [data_dir]

Inputs:
    - data/*.csv (or $CARD_OFFERS_DATA_DIR, or the data_dir argument)

Outputs:
    - offer_coverage_report.csv     (one row per card, one column per source)
    - offer_coverage_report.xlsx    (Coverage tab + Load Warnings tab)
"""

import sys, os
import time
_SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
_PROJECT_ROOT = os.path.join(_SCRIPT_DIR, '..')
sys.path.insert(0, os.path.join(_PROJECT_ROOT, 'src'))
OUTPUT_DIR = os.path.join(_PROJECT_ROOT, 'outputs')

import pandas as pd

from card_matcher import SECTION_HEADINGS, build_candidate_index, collect_offers
from offer_sources import DEFAULT_SOURCES, load_sources


def coverage_rows(index, sources):
    """One dict per identity: type, display, variants, per-source offer counts."""
    source_names = [s.name for s in sources]
    rows = []
    for identity in index.all():
        counts = dict.fromkeys(source_names, 0)
        for section in collect_offers(identity, sources):
            counts[section.source] = len(section.wrappers)
        rows.append({
            'type': SECTION_HEADINGS[identity.type],
            'card': identity.display,
            'variant': identity.literal_variant or '',
            **counts,
            'total_offers': sum(counts.values()),
        })
    return rows


def print_summary(df, sources):
    print("\n" + "="*70)
    print("COVERAGE SUMMARY")
    print("="*70)
    for card_type, group in df.groupby('type', sort=False):
        uncovered = int((group['total_offers'] == 0).sum())
        print(f"\n{card_type}: {len(group)} entries, {uncovered} with no offers")
        print(f"  Mean offers per entry: {group['total_offers'].mean():.1f}")

    print("\nOffers contributed per source (after dedupe):")
    for source in sources:
        print(f"  {source.name}: {int(df[source.name].sum())}")


def main():
    start_time = time.time()
    data_dir = sys.argv[1] if len(sys.argv) > 1 else None

    print("Loading offer sheets...")
    sources, load_stats = load_sources(DEFAULT_SOURCES, data_dir)
    print(f"  Data folder: {load_stats['data_dir']}")
    for name, count in load_stats['rows'].items():
        print(f"  {name}: {count} rows")

    index = build_candidate_index(sources)
    if not len(index):
        print("ERROR: No cards found in any offer sheet!")
        return

    df = pd.DataFrame(coverage_rows(index, sources))
    df = df.sort_values(by=['total_offers', 'type', 'card']).reset_index(drop=True)

    os.makedirs(OUTPUT_DIR, exist_ok=True)
    csv_path = os.path.join(OUTPUT_DIR, "offer_coverage_report.csv")
    df.to_csv(csv_path, index=False, encoding='utf-8-sig')
    print(f"\nWrote {csv_path} ({len(df)} rows)")

    warnings = load_stats['warnings'] + index.stats['warnings']
    xlsx_path = os.path.join(OUTPUT_DIR, "offer_coverage_report.xlsx")
    with pd.ExcelWriter(xlsx_path, engine='openpyxl') as writer:
        df.to_excel(writer, sheet_name='Coverage', index=False)
        pd.DataFrame({'warning': warnings}).to_excel(writer, sheet_name='Load Warnings', index=False)
    print(f"Wrote {xlsx_path}")

    print_summary(df, sources)

    elapsed = time.time() - start_time
    print(f"\nDone in {elapsed:.1f}s")


if __name__ == '__main__':
    main()
