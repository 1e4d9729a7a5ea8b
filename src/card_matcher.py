"""
Core matching engine for travel card offers.

Matching Approach:
    - Every source file lists the cards an offer applies to as free text
      ("HDFC Regalia (Visa Signature), ICICI Amazon Pay")
    - Card names are normalized (lowercase, accent folding, punctuation removed)
      and brand-canonicalized ("Hdfc" -> "HDFC") before they are compared
    - A trailing parenthetical is the card's variant, everything before it is
      the base name; only the base name identifies the card
    - The candidate index groups all mentions across all sources by normalized
      base name, first spelling wins
    - Suggestions are fuzzy-ranked with rapidfuzz Levenshtein similarity plus
      token containment; substring hits always come first

Eligibility:
    - Base-name equality is exact after normalization, never fuzzy
    - The "applicable only on X variant" note comes only from a literal
      parenthetical on the matching entry, never from inferred variants

Duplicate Handling:
    - The same offer is often copied into several portal sheets
    - Each offer row gets a content fingerprint (title, description, image, link)
    - Sources are walked in a declared priority order; the first copy wins
"""

import html
import logging
import re
import unicodedata
from dataclasses import dataclass, field, replace
from functools import lru_cache
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

import pandas as pd
from rapidfuzz.distance import Levenshtein

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
MAX_SUGGESTIONS = 50        # Per section cap on the suggestion list
ACCEPT_THRESHOLD = 0.3      # Containment policy: scores <= this are dropped
SUBSTRING_SCORE = 100.0     # Candidate contains the whole query
WORD_WEIGHT = 0.7
EDIT_WEIGHT = 0.3

# Weighted ranking policy
EXACT_TOKEN_WEIGHT = 1.0
PREFIX_TOKEN_WEIGHT = 0.75
FUZZY_TOKEN_WEIGHT = 0.5
FUZZY_TOKEN_MIN_SIMILARITY = 0.6
CONTAINMENT_BONUS = 0.5
SHORT_NAME_BONUS = 0.1

RANK_POLICY_CONTAINMENT = "containment"
RANK_POLICY_WEIGHTED = "weighted"

# "Select" is a common tier name and a common typo ("selct", "slect")
SELECT_TOKEN = "select"
SELECT_QUERY_MAX_DISTANCE = 2
SELECT_CANDIDATE_MAX_DISTANCE = 1

MATCH_POLICY_EXACT = "exact"
MATCH_POLICY_FORMS = "forms"

MATCHED_FORM_BASE = "base"
MATCHED_FORM_DISPLAY = "display"
MATCHED_FORM_VARIANT = "variant"

CARD_TYPE_CREDIT = "credit"
CARD_TYPE_DEBIT = "debit"
CARD_TYPE_UPI = "upi"
CARD_TYPE_NETBANKING = "netbanking"
CARD_TYPES = (CARD_TYPE_CREDIT, CARD_TYPE_DEBIT, CARD_TYPE_UPI, CARD_TYPE_NETBANKING)

SECTION_HEADINGS = {
    CARD_TYPE_CREDIT: "Credit Cards",
    CARD_TYPE_DEBIT: "Debit Cards",
    CARD_TYPE_UPI: "UPI",
    CARD_TYPE_NETBANKING: "NetBanking",
}

SOURCE_KIND_OFFERS = "offers"
SOURCE_KIND_PERMANENT = "permanent"

# Unit separator: normalized text and URLs never contain it
FINGERPRINT_SEPARATOR = "\x1f"

# Logical field -> header aliases, first present and non-blank wins
LIST_FIELDS: Dict[str, Tuple[str, ...]] = {
    'credit': ("Eligible Credit Cards", "Eligible Cards"),
    'debit': ("Eligible Debit Cards", "Applicable Debit Cards"),
    'upi': ("Eligible UPI", "UPI", "UPI Apps"),
    'netbanking': ("Eligible NetBanking", "NetBanking", "Net Banking", "Eligible Net Banking"),
    'title': ("Offer Title", "Title", "Offer"),
    'image': ("Image", "Credit Card Image", "Offer Image"),
    'link': ("Link", "Offer Link"),
    'desc': ("Description", "Details", "Offer Description", "Flight Benefit"),
    'permanent_card_name': ("Credit Card Name",),
    'permanent_benefit': ("Flight Benefit", "Benefit", "Offer", "Hotel Benefit"),
    'coupon': ("Coupon", "Coupon Code", "Code", "Promo Code"),
    'website': ("Website", "Site"),
}

# Sites where the red "Applicable only on {variant} variant" note is meaningful
VARIANT_NOTE_SITES = frozenset({
    "EaseMyTrip",
    "Yatra (Domestic)",
    "Yatra (International)",
    "Ixigo",
    "MakeMyTrip",
    "ClearTrip",
    "Goibibo",
    "Airline",
    "Permanent",
})


# ---------------------------------------------------------------------------
# Brand canonicalization
# ---------------------------------------------------------------------------

BRAND_CANONICAL: Dict[str, str] = {
    # Travel portals
    'makemytrip': 'MakeMyTrip',
    'easemytrip': 'EaseMyTrip',
    'cleartrip': 'ClearTrip',
    'goibibo': 'Goibibo',
    'irctc': 'IRCTC',
    # Bank acronyms
    'icici': 'ICICI',
    'hdfc': 'HDFC',
    'sbi': 'SBI',
    'idfc': 'IDFC',
    'pnb': 'PNB',
    'rbl': 'RBL',
    'yes': 'YES',
    'hsbc': 'HSBC',
    'au': 'AU',
    'bob': 'BOB',
}

_BRAND_PATTERN = re.compile(
    r'\b(' + '|'.join(re.escape(k) for k in sorted(BRAND_CANONICAL, key=len, reverse=True)) + r')\b',
    re.IGNORECASE,
)


def canonicalize_brand(text: str) -> str:
    """
    Rewrite known brand spellings to one canonical casing (whole words only).

    Examples:
        'Hdfc Regalia' -> 'HDFC Regalia'
        'Makemytrip ICICI Card' -> 'MakeMyTrip ICICI Card'
        'Yesterday' -> 'Yesterday'   (not a whole-word hit)
    """
    if _is_blank(text):
        return ''
    return _BRAND_PATTERN.sub(lambda m: BRAND_CANONICAL[m.group(1).lower()], str(text))


# ---------------------------------------------------------------------------
# String normalization
# ---------------------------------------------------------------------------

_NON_WORD = re.compile(r'[^\w\s]|_')
_WHITESPACE = re.compile(r'\s+')
_URL_SCHEME = re.compile(r'^https?://')
_URL_WWW = re.compile(r'^www\.')
_URL_JUNK = re.compile(r'[\s\x00-\x1f\x7f]')


def _is_blank(value) -> bool:
    """None, NaN and whitespace-only strings all count as "no value"."""
    if value is None:
        return True
    if isinstance(value, float) and pd.isna(value):
        return True
    return not str(value).strip()


@lru_cache(maxsize=50000)
def _normalize_str(s: str) -> str:
    # Decompose before and after lowercasing: some characters only reveal
    # uppercase or combining parts after one of the two steps
    s = unicodedata.normalize('NFKD', s).lower()
    s = unicodedata.normalize('NFKD', s)
    s = ''.join(ch for ch in s if not unicodedata.combining(ch))
    s = _NON_WORD.sub(' ', s)
    return _WHITESPACE.sub(' ', s).strip()


def normalize_text(text) -> str:
    """
    Normalize a card or offer string for comparison.

    Steps:
        1. Unicode compatibility decomposition, accents dropped ("é" -> "e")
        2. Lowercase
        3. Every non-word character becomes a space (underscore included)
        4. Collapse whitespace, trim

    None / NaN yield ''. The result is stable: normalize_text(normalize_text(s))
    equals normalize_text(s).
    """
    if _is_blank(text):
        return ''
    return _normalize_str(str(text))


def normalize_url(url) -> str:
    """
    Normalize a URL for fingerprinting.

    Examples:
        'https://www.Site.com/offer/' -> 'site.com/offer'
        'http://site.com/offer'       -> 'site.com/offer'
    """
    if _is_blank(url):
        return ''
    s = _URL_JUNK.sub('', str(url).lower())
    s = _URL_SCHEME.sub('', s)
    s = _URL_WWW.sub('', s)
    if s.endswith('/'):
        s = s[:-1]
    return s


def _compact(norm: str) -> str:
    return norm.replace(' ', '')


# ---------------------------------------------------------------------------
# Identity extraction
# ---------------------------------------------------------------------------

_TRAILING_PAREN = re.compile(r'\s*\(([^)]*)\)\s*$')

NETWORK_ALIASES: Dict[str, str] = {
    'visa': 'Visa',
    'mastercard': 'Mastercard',
    'master card': 'Mastercard',
    'rupay': 'RuPay',
    'amex': 'Amex',
    'american express': 'Amex',
    'diners': 'Diners Club',
    'diners club': 'Diners Club',
    'discover': 'Discover',
    'jcb': 'JCB',
}

TIER_ALIASES: Dict[str, str] = {
    'signature': 'Signature',
    'platinum': 'Platinum',
    'select': 'Select',
    'infinite': 'Infinite',
    'world': 'World',
    'gold': 'Gold',
    'classic': 'Classic',
    'titanium': 'Titanium',
}


def _alias_pattern(aliases: Dict[str, str]) -> re.Pattern:
    keys = sorted(aliases, key=len, reverse=True)
    return re.compile(r'\b(' + '|'.join(re.escape(k) for k in keys) + r')\b', re.IGNORECASE)


_NETWORK_PATTERN = _alias_pattern(NETWORK_ALIASES)
_TIER_PATTERN = _alias_pattern(TIER_ALIASES)


@dataclass(frozen=True)
class IdentityParts:
    """Base name plus the two kinds of variant a raw card string can carry."""
    base: str
    literal_variant: Optional[str] = None
    inferred_variant: Optional[str] = None

    @property
    def variant(self) -> Optional[str]:
        return self.literal_variant or self.inferred_variant


def strip_parenthetical(raw) -> str:
    """
    Remove trailing parenthetical group(s) and the whitespace around them.

    Stripping repeats until no trailing group is left, so the result never
    ends in a parenthetical:
        'HDFC Regalia (Visa Signature)' -> 'HDFC Regalia'
        'Axis Atlas (Visa) (Infinite)'  -> 'Axis Atlas'
    """
    if _is_blank(raw):
        return ''
    s = str(raw).strip()
    while True:
        stripped = _TRAILING_PAREN.sub('', s, count=1).strip()
        if stripped == s:
            return s
        s = stripped


def literal_variant(raw) -> Optional[str]:
    """Text inside the last trailing parenthetical, or None."""
    if _is_blank(raw):
        return None
    m = _TRAILING_PAREN.search(str(raw))
    if not m:
        return None
    return m.group(1).strip() or None


def infer_variant(raw) -> Optional[str]:
    """
    Best-effort "<Network> <Tier>" guess from alias tables.

    Only a hint for display. It must never drive the variant-only note,
    which relies on the literal parenthetical alone.

    Examples:
        'SBI Elite Visa Signature' -> 'Visa Signature'
        'Axis Rupay Card'          -> 'RuPay'
        'HDFC Regalia'             -> None
    """
    if _is_blank(raw):
        return None
    text = str(raw)
    network = _NETWORK_PATTERN.search(text)
    tier = _TIER_PATTERN.search(text)
    parts = []
    if network:
        parts.append(NETWORK_ALIASES[network.group(1).lower()])
    if tier:
        parts.append(TIER_ALIASES[tier.group(1).lower()])
    return ' '.join(parts) or None


def extract_identity(raw, infer: bool = False) -> IdentityParts:
    """
    Split a raw instrument string into base name and variant.

    The literal variant exists only if this exact string ends in a
    parenthetical. With infer=True and no parenthetical, the alias tables
    fill inferred_variant instead.
    """
    base = strip_parenthetical(raw)
    literal = literal_variant(raw)
    inferred = None
    if infer and literal is None:
        inferred = infer_variant(raw)
    return IdentityParts(base=base, literal_variant=literal, inferred_variant=inferred)


# ---------------------------------------------------------------------------
# Row access
# ---------------------------------------------------------------------------

def split_list(value) -> List[str]:
    """Split a comma-separated eligibility cell; newlines count as spaces."""
    if _is_blank(value):
        return []
    text = str(value).replace('\r', ' ').replace('\n', ' ')
    return [part.strip() for part in text.split(',') if part.strip()]


class FieldResolver:
    """
    Reads logical fields from rows whose headers vary between sources.

    Each logical field has an ordered alias list; the first alias present in
    the row with a non-blank value wins. Missing fields resolve to None.
    """

    def __init__(self, schema: Optional[Dict[str, Sequence[str]]] = None):
        self.schema = {name: tuple(aliases) for name, aliases in (schema or LIST_FIELDS).items()}

    def get(self, row: Optional[Dict], logical_field: str) -> Optional[str]:
        if not row:
            return None
        for key in self.schema[logical_field]:
            value = row.get(key)
            if _is_blank(value):
                continue
            return str(value).strip()
        return None

    def get_list(self, row: Optional[Dict], logical_field: str) -> List[str]:
        return split_list(self.get(row, logical_field))


DEFAULT_RESOLVER = FieldResolver()


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CardIdentity:
    type: str
    display: str
    base: str
    base_norm: str
    literal_variant: Optional[str] = None
    inferred_variant: Optional[str] = None

    @property
    def variant(self) -> Optional[str]:
        return self.literal_variant or self.inferred_variant


@dataclass(frozen=True)
class Source:
    """One tabular source: a read-only snapshot of its rows."""
    name: str
    rows: Tuple[Dict[str, str], ...] = ()
    kind: str = SOURCE_KIND_OFFERS
    heading: str = ''
    error: Optional[str] = None

    @property
    def is_permanent(self) -> bool:
        return self.kind == SOURCE_KIND_PERMANENT


@dataclass(frozen=True)
class CandidateIndex:
    credit: Tuple[CardIdentity, ...] = ()
    debit: Tuple[CardIdentity, ...] = ()
    upi: Tuple[CardIdentity, ...] = ()
    netbanking: Tuple[CardIdentity, ...] = ()
    stats: Dict = field(default_factory=dict, compare=False)

    def for_type(self, card_type: str) -> Tuple[CardIdentity, ...]:
        if card_type not in CARD_TYPES:
            raise ValueError(f"Unknown card type: {card_type!r}")
        return getattr(self, card_type)

    def all(self) -> List[CardIdentity]:
        return [identity for card_type in CARD_TYPES for identity in self.for_type(card_type)]

    def __len__(self) -> int:
        return sum(len(self.for_type(t)) for t in CARD_TYPES)


# ---------------------------------------------------------------------------
# Candidate index
# ---------------------------------------------------------------------------

def _display_sort_key(display: str) -> Tuple[str, str]:
    return display.casefold(), display


class _IdentityAccumulator:
    """Per-type base_norm -> first spelling seen. Later passes never overwrite."""

    def __init__(self, infer_variants: bool):
        self.infer_variants = infer_variants
        self.entries: Dict[str, Dict[str, Dict]] = {t: {} for t in CARD_TYPES}
        self.mentions = 0
        self.collisions = 0

    def add(self, card_type: str, raw: str) -> None:
        parts = extract_identity(raw, infer=self.infer_variants)
        base = canonicalize_brand(parts.base)
        base_norm = normalize_text(base)
        if not base_norm:
            return
        self.mentions += 1
        bucket = self.entries[card_type]
        entry = bucket.get(base_norm)
        if entry is None:
            bucket[base_norm] = {
                'base': base,
                'literal_variant': parts.literal_variant,
                'inferred_variant': parts.inferred_variant,
            }
            return
        if entry['base'] != base:
            self.collisions += 1
        # Keep the first variant of each kind; the base spelling stays fixed
        if entry['literal_variant'] is None and parts.literal_variant:
            entry['literal_variant'] = parts.literal_variant
        if entry['inferred_variant'] is None and parts.inferred_variant:
            entry['inferred_variant'] = parts.inferred_variant

    def harvest(self, row: Dict, resolver: FieldResolver, card_types: Iterable[str]) -> None:
        for card_type in card_types:
            for raw in resolver.get_list(row, card_type):
                self.add(card_type, raw)
        if CARD_TYPE_CREDIT in card_types:
            # Permanent benefit sheets name one credit card per row
            permanent_name = resolver.get(row, 'permanent_card_name')
            if permanent_name:
                self.add(CARD_TYPE_CREDIT, permanent_name)

    def materialize(self, card_type: str) -> Tuple[CardIdentity, ...]:
        bucket = self.entries[card_type]
        ordered = sorted(bucket.items(), key=lambda kv: _display_sort_key(kv[1]['base']))
        return tuple(
            CardIdentity(
                type=card_type,
                display=entry['base'],
                base=entry['base'],
                base_norm=base_norm,
                literal_variant=entry['literal_variant'],
                inferred_variant=entry['inferred_variant'],
            )
            for base_norm, entry in ordered
        )


def build_candidate_index(
    sources: Iterable[Source],
    backfill_sources: Iterable[Source] = (),
    backfill_types: Sequence[str] = (CARD_TYPE_UPI, CARD_TYPE_NETBANKING),
    resolver: FieldResolver = DEFAULT_RESOLVER,
    infer_variants: bool = False,
) -> CandidateIndex:
    """
    Build the searchable card index from all source rows.

    Two ordered passes share one merge structure:
        1. Index sources: every card type plus the permanent card name column
        2. Backfill sources: only backfill_types (UPI / NetBanking by default),
           never overwriting a key from pass 1

    Returns a CandidateIndex whose per-type tuples are sorted by display name.
    Rows with blank cells contribute nothing; there is no failure path.
    """
    acc = _IdentityAccumulator(infer_variants)
    rows_scanned = 0
    empty_sources = []

    for source in sources:
        if not source.rows:
            empty_sources.append(source.name)
        for row in source.rows:
            rows_scanned += 1
            acc.harvest(row, resolver, CARD_TYPES)

    backfill_types = tuple(t for t in backfill_types if t in CARD_TYPES)
    backfill_rows = 0
    for source in backfill_sources:
        for row in source.rows:
            backfill_rows += 1
            acc.harvest(row, resolver, backfill_types)

    index_kwargs = {t: acc.materialize(t) for t in CARD_TYPES}

    warnings = []
    if empty_sources:
        warnings.append(f"{len(empty_sources)} sources contributed no rows: {', '.join(empty_sources)}")
    if acc.collisions:
        warnings.append(f"{acc.collisions} card mentions merged into an existing spelling")
        logger.warning("%d card mentions merged into an existing spelling", acc.collisions)

    stats = {
        'rows_scanned': rows_scanned,
        'backfill_rows': backfill_rows,
        'mentions': acc.mentions,
        'collisions': acc.collisions,
        'identities': {t: len(index_kwargs[t]) for t in CARD_TYPES},
        'warnings': warnings,
    }
    logger.debug(
        "Built card index: %d rows, %d mentions, %s",
        rows_scanned, acc.mentions, stats['identities'],
    )
    return CandidateIndex(stats=stats, **index_kwargs)


# ---------------------------------------------------------------------------
# Fuzzy ranking
# ---------------------------------------------------------------------------

def score_candidate(query: str, candidate: str) -> float:
    """
    Containment score of a candidate name against a (partial) query.

    Returns SUBSTRING_SCORE when the normalized candidate contains the whole
    normalized query. Otherwise:
        0.7 * (share of query tokens found inside some candidate token)
      + 0.3 * (1 - levenshtein / max length)
    """
    q = normalize_text(query)
    c = normalize_text(candidate)
    if not q:
        return 0.0
    if q in c:
        return SUBSTRING_SCORE

    q_tokens = q.split()
    c_tokens = c.split()
    matching = sum(1 for qt in q_tokens if any(qt in ct for ct in c_tokens))
    word_fraction = matching / max(1, len(q_tokens))
    edit_similarity = Levenshtein.normalized_similarity(q, c)
    return WORD_WEIGHT * word_fraction + EDIT_WEIGHT * edit_similarity


def score_candidate_weighted(query: str, candidate: str) -> float:
    """
    Per-token score: exact token > prefix > close edit, plus bonuses.

    Bonuses: every query token appears somewhere in the candidate, and a small
    one for short candidate names. Zero means "not a candidate".
    """
    q = normalize_text(query)
    c = normalize_text(candidate)
    if not q or not c:
        return 0.0
    if q in c:
        return SUBSTRING_SCORE

    q_tokens = q.split()
    c_tokens = c.split()
    score = 0.0
    for qt in q_tokens:
        if qt in c_tokens:
            score += EXACT_TOKEN_WEIGHT
        elif any(ct.startswith(qt) for ct in c_tokens):
            score += PREFIX_TOKEN_WEIGHT
        else:
            best = max(Levenshtein.normalized_similarity(qt, ct) for ct in c_tokens)
            if best > FUZZY_TOKEN_MIN_SIMILARITY:
                score += FUZZY_TOKEN_WEIGHT * best

    if all(qt in c for qt in q_tokens):
        score += CONTAINMENT_BONUS
    if score <= 0:
        return 0.0
    return score + SHORT_NAME_BONUS / len(c_tokens)


# policy -> (scorer, scores must be strictly above this)
_RANK_POLICIES = {
    RANK_POLICY_CONTAINMENT: (score_candidate, ACCEPT_THRESHOLD),
    RANK_POLICY_WEIGHTED: (score_candidate_weighted, 0.0),
}


def _is_select_like(token: str, max_distance: int) -> bool:
    return Levenshtein.distance(token, SELECT_TOKEN, score_cutoff=max_distance) <= max_distance


def is_select_query(query: str) -> bool:
    """True if any query token is a plausible spelling of "select"."""
    return any(_is_select_like(t, SELECT_QUERY_MAX_DISTANCE) for t in normalize_text(query).split())


def has_select_token(candidate: str) -> bool:
    return any(_is_select_like(t, SELECT_CANDIDATE_MAX_DISTANCE) for t in normalize_text(candidate).split())


def rank_candidates(
    query: str,
    candidates: Iterable[CardIdentity],
    limit: int = MAX_SUGGESTIONS,
    policy: str = RANK_POLICY_CONTAINMENT,
) -> List[CardIdentity]:
    """
    Rank candidate identities for a partial query, best first.

    Ordering:
        1. Candidates containing the whole query (substring hits)
        2. "Select" cards, when the query looks like a spelling of "select";
           these are kept even if their score is below the threshold
        3. Score, descending
        4. Display name (case-insensitive, then exact)

    Returns at most `limit` identities; an empty query returns [].
    """
    if policy not in _RANK_POLICIES:
        raise ValueError(f"Unknown ranking policy: {policy!r}")
    q = normalize_text(query)
    if not q or limit <= 0:
        return []

    scorer, threshold = _RANK_POLICIES[policy]
    select_query = is_select_query(q)

    scored = []
    for candidate in candidates:
        score = scorer(q, candidate.display)
        substring = q in normalize_text(candidate.display)
        promoted = select_query and has_select_token(candidate.display)
        if not (substring or promoted or score > threshold):
            continue
        scored.append((not substring, not promoted, -score, _display_sort_key(candidate.display), candidate))

    scored.sort(key=lambda item: item[:4])
    return [item[-1] for item in scored[:limit]]


@dataclass(frozen=True)
class SuggestionSection:
    card_type: str
    heading: str
    candidates: Tuple[CardIdentity, ...]


@dataclass(frozen=True)
class Suggestions:
    sections: Tuple[SuggestionSection, ...] = ()
    no_matches: bool = False

    @property
    def candidates(self) -> List[CardIdentity]:
        return [c for section in self.sections for c in section.candidates]


def build_suggestions(
    query: str,
    index: CandidateIndex,
    limit: int = MAX_SUGGESTIONS,
    policy: str = RANK_POLICY_CONTAINMENT,
) -> Suggestions:
    """
    Rank every card type separately and return the non-empty sections.

    no_matches is True only for a non-blank query with zero candidates; a
    query of punctuation alone ("!!!") matches nothing.
    """
    if _is_blank(query):
        return Suggestions()
    if not normalize_text(query):
        return Suggestions(no_matches=True)
    sections = []
    for card_type in CARD_TYPES:
        ranked = rank_candidates(query, index.for_type(card_type), limit=limit, policy=policy)
        if ranked:
            sections.append(SuggestionSection(card_type, SECTION_HEADINGS[card_type], tuple(ranked)))
    return Suggestions(sections=tuple(sections), no_matches=not sections)


# ---------------------------------------------------------------------------
# Eligibility matching
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MatchResult:
    matched: bool
    variant_text: str = ''
    matched_form: Optional[str] = None


@dataclass(frozen=True)
class MatchWrapper:
    offer: Dict[str, str]
    site: str
    variant_text: str = ''
    matched_form: Optional[str] = None


def _entry_key(entry: str) -> str:
    return _compact(normalize_text(canonicalize_brand(strip_parenthetical(entry))))


def _variant_forms(identity: CardIdentity) -> Set[str]:
    variant = identity.variant
    if not variant:
        return set()
    forms = (
        f"{identity.base} {variant}",
        f"{identity.base} - {variant}",
        f"{identity.base} ({variant})",
    )
    return {_compact(normalize_text(f)) for f in forms}


def match_eligibility(
    identity: CardIdentity,
    entries: Iterable[str],
    policy: str = MATCH_POLICY_EXACT,
) -> MatchResult:
    """
    Check whether an eligibility list names this card.

    exact policy:
        Base names are compared after normalization with all whitespace
        removed ("HDFC  Regalia" == "hdfc regalia" == "HDFCRegalia").
    forms policy:
        Also accepts the whole entry equal to the card's display name or to
        "base variant" / "base - variant" / "base (variant)", and records
        which form matched.

    variant_text is the literal parenthetical of the first matching entry
    that has one. Scanning continues after a match only to look for it.
    """
    if policy not in (MATCH_POLICY_EXACT, MATCH_POLICY_FORMS):
        raise ValueError(f"Unknown match policy: {policy!r}")

    target = _compact(identity.base_norm)
    if not target:
        return MatchResult(matched=False)

    display_key = variant_forms = None
    if policy == MATCH_POLICY_FORMS:
        display_key = _compact(normalize_text(identity.display))
        variant_forms = _variant_forms(identity)

    matched_form = None
    variant_text = ''
    for entry in entries:
        form = None
        if _entry_key(entry) == target:
            form = MATCHED_FORM_BASE
        elif policy == MATCH_POLICY_FORMS:
            whole = _compact(normalize_text(canonicalize_brand(entry)))
            if whole == display_key:
                form = MATCHED_FORM_DISPLAY
            elif whole in variant_forms:
                form = MATCHED_FORM_VARIANT
        if form is None:
            continue

        if matched_form is None:
            matched_form = form
        literal = literal_variant(entry)
        if literal and not variant_text:
            variant_text = literal
        if variant_text:
            break

    return MatchResult(matched=matched_form is not None, variant_text=variant_text, matched_form=matched_form)


def eligibility_entries(identity: CardIdentity, source: Source, row: Dict,
                        resolver: FieldResolver = DEFAULT_RESOLVER) -> List[str]:
    """The raw card names a row lists for this identity's type."""
    if source.is_permanent:
        name = resolver.get(row, 'permanent_card_name')
        return [name] if name else []
    return resolver.get_list(row, identity.type)


def match_source(
    identity: CardIdentity,
    source: Source,
    resolver: FieldResolver = DEFAULT_RESOLVER,
    policy: str = MATCH_POLICY_EXACT,
) -> List[MatchWrapper]:
    """Every row of `source` whose eligibility list names `identity`."""
    out = []
    for row in source.rows:
        result = match_eligibility(identity, eligibility_entries(identity, source, row, resolver), policy)
        if result.matched:
            out.append(MatchWrapper(
                offer=row,
                site=source.name,
                variant_text=result.variant_text,
                matched_form=result.matched_form,
            ))
    return out


def show_variant_note(wrapper: MatchWrapper) -> bool:
    """Red per-card note: allow-listed site and a literal variant only."""
    return wrapper.site in VARIANT_NOTE_SITES and bool(wrapper.variant_text.strip())


# ---------------------------------------------------------------------------
# Deduplication
# ---------------------------------------------------------------------------

def offer_fingerprint(row: Dict, resolver: FieldResolver = DEFAULT_RESOLVER) -> str:
    """
    Content key of an offer row: title, description, image URL, link URL.

    Title falls back to the website column. URLs ignore scheme, "www.",
    case and one trailing slash.
    """
    title = resolver.get(row, 'title') or resolver.get(row, 'website') or ''
    parts = (
        normalize_text(title),
        normalize_text(resolver.get(row, 'desc')),
        normalize_url(resolver.get(row, 'image')),
        normalize_url(resolver.get(row, 'link')),
    )
    return FINGERPRINT_SEPARATOR.join(parts)


def dedupe_wrappers(
    wrapper_lists: Iterable[Iterable[MatchWrapper]],
    seen: Optional[Set[str]] = None,
    resolver: FieldResolver = DEFAULT_RESOLVER,
) -> List[List[MatchWrapper]]:
    """
    Drop offers already emitted by an earlier list.

    Lists are consumed in priority order with one shared seen-set, so an
    offer present in lists A and B survives only in A. Pass `seen` to carry
    the set across calls.
    """
    if seen is None:
        seen = set()
    out = []
    for wrappers in wrapper_lists:
        kept = []
        for wrapper in wrappers:
            key = offer_fingerprint(wrapper.offer, resolver)
            if key in seen:
                continue
            seen.add(key)
            kept.append(wrapper)
        out.append(kept)
    return out


@dataclass(frozen=True)
class SourceOffers:
    source: str
    heading: str
    wrappers: Tuple[MatchWrapper, ...]
    is_permanent: bool = False


def collect_offers(
    identity: Optional[CardIdentity],
    sources: Sequence[Source],
    resolver: FieldResolver = DEFAULT_RESOLVER,
    policy: str = MATCH_POLICY_EXACT,
) -> List[SourceOffers]:
    """
    Match a selected card against every source and dedupe across them.

    `sources` is the priority order. Permanent card benefits only apply to
    credit cards; other selections skip those sources. Returns the
    non-empty per-source sections in priority order.
    """
    if identity is None:
        return []
    seen: Set[str] = set()
    results = []
    for source in sources:
        if source.is_permanent and identity.type != CARD_TYPE_CREDIT:
            continue
        wrappers = match_source(identity, source, resolver, policy)
        kept = dedupe_wrappers([wrappers], seen=seen, resolver=resolver)[0]
        if kept:
            results.append(SourceOffers(
                source=source.name,
                heading=source.heading or source.name,
                wrappers=tuple(kept),
                is_permanent=source.is_permanent,
            ))
    return results


@dataclass(frozen=True)
class OfferView:
    title: str
    description: Optional[str]
    image: Optional[str]
    link: Optional[str]
    coupon: Optional[str]
    site: str
    variant_text: str
    show_variant_note: bool
    is_permanent: bool


def present_offer(wrapper: MatchWrapper, is_permanent: bool = False,
                  resolver: FieldResolver = DEFAULT_RESOLVER) -> OfferView:
    row = wrapper.offer
    if is_permanent:
        description = resolver.get(row, 'permanent_benefit')
    else:
        description = resolver.get(row, 'desc')
    return OfferView(
        title=resolver.get(row, 'title') or resolver.get(row, 'website') or 'Offer',
        description=description,
        image=resolver.get(row, 'image'),
        link=resolver.get(row, 'link'),
        coupon=resolver.get(row, 'coupon'),
        site=wrapper.site,
        variant_text=wrapper.variant_text,
        show_variant_note=show_variant_note(wrapper),
        is_permanent=is_permanent,
    )


def variant_note_html(view: OfferView) -> str:
    """Red "applicable only on X variant" note; sheet text is HTML-escaped."""
    return (
        "<p style='color:#d32f2f'><strong>Note:</strong> This benefit is applicable only on "
        f"<em>{html.escape(view.variant_text)}</em> variant</p>"
    )


def no_offers_html(identity: CardIdentity) -> str:
    return (
        "<p style='color:#d32f2f;text-align:center'>"
        f"No offers found for {html.escape(identity.display)}</p>"
    )


# ---------------------------------------------------------------------------
# Search state
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SearchState:
    query: str = ''
    suggestions: Suggestions = Suggestions()
    no_matches: bool = False
    selected: Optional[CardIdentity] = None
    policy: str = RANK_POLICY_CONTAINMENT


@dataclass(frozen=True)
class QueryChanged:
    text: str


@dataclass(frozen=True)
class CandidatePicked:
    identity: CardIdentity


@dataclass(frozen=True)
class SelectionCleared:
    pass


@dataclass(frozen=True)
class PolicyChanged:
    policy: str


def reduce_search_state(state: SearchState, event, index: CandidateIndex,
                        limit: int = MAX_SUGGESTIONS) -> SearchState:
    """
    Produce the next search state; the previous state is never mutated.

    The ranking policy lives on the state. PolicyChanged re-ranks the current
    query only while suggestions (or the no-matches message) are showing.
    """
    if isinstance(event, QueryChanged):
        if not event.text.strip():
            return SearchState(query=event.text, policy=state.policy)
        suggestions = build_suggestions(event.text, index, limit=limit, policy=state.policy)
        return replace(state, query=event.text, suggestions=suggestions, no_matches=suggestions.no_matches)
    if isinstance(event, CandidatePicked):
        return SearchState(query=event.identity.display, selected=event.identity, policy=state.policy)
    if isinstance(event, SelectionCleared):
        return SearchState(policy=state.policy)
    if isinstance(event, PolicyChanged):
        if event.policy not in _RANK_POLICIES:
            raise ValueError(f"Unknown ranking policy: {event.policy!r}")
        if not (state.suggestions.sections or state.no_matches):
            return replace(state, policy=event.policy)
        suggestions = build_suggestions(state.query, index, limit=limit, policy=event.policy)
        return replace(state, policy=event.policy, suggestions=suggestions, no_matches=suggestions.no_matches)
    raise TypeError(f"Unknown search event: {event!r}")
