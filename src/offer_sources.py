"""
Offer source loading.

Each travel portal ships its offers as its own CSV/Excel sheet with its own
header spelling. This module reads them into immutable row snapshots for the
matching engine:

    - Every cell is read as text (no NaN, no numeric coercion of card names)
    - Header whitespace is stripped ("Eligible Cards " -> "Eligible Cards")
    - Fully blank rows are dropped
    - A source that cannot be read becomes an empty Source with `error` set;
      the remaining sources still load

The declared DEFAULT_SOURCES order is also the deduplication priority.
"""

import logging
import os
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd

from card_matcher import SOURCE_KIND_OFFERS, SOURCE_KIND_PERMANENT, Source

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
_PROJECT_ROOT = os.path.join(os.path.dirname(os.path.abspath(__file__)), '..')
DEFAULT_DATA_DIR = os.path.normpath(os.path.join(_PROJECT_ROOT, 'data'))
DATA_DIR_ENV = 'CARD_OFFERS_DATA_DIR'


@dataclass(frozen=True)
class SourceConfig:
    name: str
    filename: str
    kind: str = SOURCE_KIND_OFFERS
    heading: str = ''


# Priority order: permanent card benefits first, then each portal
DEFAULT_SOURCES: Tuple[SourceConfig, ...] = (
    SourceConfig("Permanent", "permanent.csv", SOURCE_KIND_PERMANENT, "Permanent Offers"),
    SourceConfig("Airline", "airline.csv", SOURCE_KIND_OFFERS, "Airline Offers"),
    SourceConfig("Goibibo", "goibibo.csv", SOURCE_KIND_OFFERS, "Offers on Goibibo"),
    SourceConfig("EaseMyTrip", "easeMyTrip.csv", SOURCE_KIND_OFFERS, "Offers on EaseMyTrip"),
    SourceConfig("Yatra (Domestic)", "yatraDomestic.csv", SOURCE_KIND_OFFERS, "Offers on Yatra (Domestic)"),
    SourceConfig("Yatra (International)", "yatraInternational.csv", SOURCE_KIND_OFFERS,
                 "Offers on Yatra (International)"),
    SourceConfig("Ixigo", "ixigo.csv", SOURCE_KIND_OFFERS, "Offers on Ixigo"),
    SourceConfig("MakeMyTrip", "makemytrip.csv", SOURCE_KIND_OFFERS, "Offers on MakeMyTrip"),
    SourceConfig("ClearTrip", "cleartrip.csv", SOURCE_KIND_OFFERS, "Offers on ClearTrip"),
)


def resolve_data_dir(data_dir: Optional[str] = None) -> str:
    """Explicit argument, then CARD_OFFERS_DATA_DIR, then <repo>/data."""
    return data_dir or os.environ.get(DATA_DIR_ENV) or DEFAULT_DATA_DIR


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------

def read_table(file, filename: Optional[str] = None) -> pd.DataFrame:
    """
    Read a CSV or .xlsx sheet with every cell as a string.

    `file` may be a path or a file-like upload; `filename` decides the format
    for uploads that carry no path.
    """
    name = (filename or str(getattr(file, 'name', file))).lower().strip()
    if name.endswith('.csv'):
        df = pd.read_csv(file, dtype=str, keep_default_na=False, encoding='utf-8-sig')
    elif name.endswith('.xlsx'):
        df = pd.read_excel(file, dtype=str, keep_default_na=False)
    else:
        raise ValueError(f"Unsupported source format: {name}")

    # Strip whitespace from column names (common issue: "Offer Title " trailing space)
    df.columns = [str(c).strip() for c in df.columns]
    df = df.fillna('')
    if df.empty:
        return df
    blank_mask = df.apply(lambda row: all(not str(v).strip() for v in row.values), axis=1)
    return df[~blank_mask].reset_index(drop=True)


def source_from_dataframe(name: str, df: pd.DataFrame, kind: str = SOURCE_KIND_OFFERS,
                          heading: str = '') -> Source:
    rows = tuple(
        {str(k): ('' if v is None else str(v)) for k, v in record.items()}
        for record in df.to_dict(orient='records')
    )
    return Source(name=name, rows=rows, kind=kind, heading=heading or name)


def load_source(config: SourceConfig, data_dir: Optional[str] = None) -> Source:
    """
    Load one configured source. Never raises for missing or unreadable files:
    the failure is logged and an empty Source carrying `error` is returned.
    """
    path = os.path.join(resolve_data_dir(data_dir), config.filename)
    try:
        df = read_table(path)
    except (OSError, ValueError, pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        logger.warning("Could not load source %s from %s: %s", config.name, path, exc)
        return Source(
            name=config.name,
            kind=config.kind,
            heading=config.heading or config.name,
            error=f"{type(exc).__name__}: {exc}",
        )
    return source_from_dataframe(config.name, df, config.kind, config.heading)


def load_sources(
    configs: Sequence[SourceConfig] = DEFAULT_SOURCES,
    data_dir: Optional[str] = None,
) -> Tuple[List[Source], Dict]:
    """
    Load every configured source in priority order.

    Returns:
        - List of Source snapshots (failed ones are empty)
        - Stats dict: per-source row counts, failures, 'warnings' list
    """
    sources = []
    rows_per_source = {}
    failed = []
    warnings = []

    for config in configs:
        source = load_source(config, data_dir)
        sources.append(source)
        rows_per_source[config.name] = len(source.rows)
        if source.error:
            failed.append(config.name)
            warnings.append(f"{config.name}: {source.error}")
        elif not source.rows:
            warnings.append(f"{config.name}: file has no offer rows")

    stats = {
        'data_dir': resolve_data_dir(data_dir),
        'sources': len(sources),
        'loaded': len(sources) - len(failed),
        'failed': failed,
        'rows': rows_per_source,
        'total_rows': sum(rows_per_source.values()),
        'warnings': warnings,
    }
    logger.info("Loaded %d/%d offer sources (%d rows)", stats['loaded'], stats['sources'], stats['total_rows'])
    return sources, stats
