"""
Travel Card Offer Finder - Streamlit UI

Type a credit/debit card, UPI app or NetBanking bank, pick it from the
suggestions, and see every travel offer that applies to it across all portal
sheets (deduplicated, permanent card benefits first).

Offer sheets are read from data/ (or $CARD_OFFERS_DATA_DIR).

Run with:
    streamlit run src/app.py
"""

import html

import streamlit as st

from card_matcher import (
    MAX_SUGGESTIONS,
    RANK_POLICY_CONTAINMENT,
    RANK_POLICY_WEIGHTED,
    CandidatePicked,
    PolicyChanged,
    QueryChanged,
    SearchState,
    SelectionCleared,
    build_candidate_index,
    collect_offers,
    no_offers_html,
    present_offer,
    reduce_search_state,
    variant_note_html,
)
from offer_sources import DEFAULT_SOURCES, load_sources

# ---------------------------------------------------------------------------
# Page config
# ---------------------------------------------------------------------------
st.set_page_config(
    page_title="Travel Card Offers",
    page_icon="✈️",
    layout="wide",
)

st.title("✈️ Travel Offers for Your Card")
st.markdown("**Find every flight and hotel offer that applies to your exact card variant**")

DISCLAIMER = (
    "All offers, coupons, and discounts listed on our platform are provided for informational "
    "purposes only. We do not guarantee the accuracy, availability, or validity of any offer. "
    "Users are advised to verify the terms and conditions with the respective merchants before "
    "making any purchase. We are not responsible for any discrepancies, expired offers, or losses "
    "arising from the use of these coupons."
)

OFFER_GRID_COLUMNS = 3


# =========================================================================
# Load sources + build index - CACHED, rebuilt only on reload
# =========================================================================

@st.cache_resource(show_spinner="Loading offer sheets...")
def load_catalog():
    """Load every offer sheet and build the card index once per session."""
    sources, load_stats = load_sources(DEFAULT_SOURCES)
    index = build_candidate_index(sources)
    return {'sources': sources, 'stats': load_stats, 'index': index}


# ---------------------------------------------------------------------------
# Sidebar
# ---------------------------------------------------------------------------
st.sidebar.header("⚙️ Settings")

rank_policy = st.sidebar.radio(
    "Suggestion ranking",
    options=[RANK_POLICY_CONTAINMENT, RANK_POLICY_WEIGHTED],
    format_func=lambda p: {"containment": "Word containment", "weighted": "Token weighted"}[p],
    help="Both keep exact/substring hits on top; they differ for partial or misspelled names.",
)

catalog = load_catalog()
sources = catalog['sources']
load_stats = catalog['stats']
index = catalog['index']

with st.sidebar.expander("Admin: Offer Sources"):
    st.caption(f"Data folder: `{load_stats['data_dir']}`")
    for name, count in load_stats['rows'].items():
        st.markdown(f"- **{name}**: {count:,} rows")
    counts = index.stats.get('identities', {})
    st.caption(
        f"{counts.get('credit', 0)} credit · {counts.get('debit', 0)} debit · "
        f"{counts.get('upi', 0)} UPI · {counts.get('netbanking', 0)} NetBanking"
    )
    if st.button("Reload sources"):
        st.cache_resource.clear()
        st.session_state.pop('search', None)
        st.rerun()

for warning in load_stats['warnings'] + index.stats.get('warnings', []):
    st.sidebar.warning(warning)

if not len(index):
    st.error("No cards found in any offer sheet. Check the data folder in the Admin panel.")
    st.stop()


# =========================================================================
# Search state (one immutable value, replaced on every event)
# =========================================================================

if 'search' not in st.session_state:
    st.session_state['search'] = SearchState(policy=rank_policy)


def _dispatch(event) -> None:
    st.session_state['search'] = reduce_search_state(
        st.session_state['search'], event, index, limit=MAX_SUGGESTIONS,
    )


def _on_query_change() -> None:
    _dispatch(QueryChanged(st.session_state.get('query_input', '')))


def _on_pick(identity) -> None:
    _dispatch(CandidatePicked(identity))
    st.session_state['query_input'] = identity.display


def _on_clear() -> None:
    _dispatch(SelectionCleared())
    st.session_state['query_input'] = ''


st.text_input(
    "Card name",
    key='query_input',
    on_change=_on_query_change,
    placeholder="Type a Credit or Debit Card, UPI app or NetBanking bank....",
)

if st.session_state['search'].policy != rank_policy:
    _dispatch(PolicyChanged(rank_policy))

state: SearchState = st.session_state['search']

if state.query.strip() and state.suggestions.sections:
    with st.container(border=True):
        for section in state.suggestions.sections:
            st.markdown(f"**{section.heading}**")
            for i, identity in enumerate(section.candidates):
                st.button(
                    identity.display,
                    key=f"pick-{section.card_type}-{i}-{identity.base_norm}",
                    on_click=_on_pick,
                    args=(identity,),
                    use_container_width=True,
                )

if state.no_matches:
    st.markdown(
        "<p style='color:#d32f2f;text-align:center'>No matching cards found. "
        "Please try a different name.</p>",
        unsafe_allow_html=True,
    )


# =========================================================================
# Offers for the selected card
# =========================================================================

def render_offer(view) -> None:
    with st.container(border=True):
        if view.image:
            st.image(view.image, use_container_width=True)
        st.markdown(f"### {view.title}")
        if view.description:
            st.write(view.description)
        if view.is_permanent:
            st.markdown("**This is a inbuilt feature of this credit card**")
        if view.coupon:
            st.code(view.coupon, language=None)
        if view.show_variant_note:
            st.markdown(variant_note_html(view), unsafe_allow_html=True)
        if view.link:
            st.link_button("View Offer", view.link)


selected = state.selected
if selected is not None:
    col_left, col_right = st.columns([4, 1])
    col_left.subheader(f"Offers for {selected.display}")
    col_right.button("Clear", on_click=_on_clear)

    sections = collect_offers(selected, sources)
    if not sections:
        st.markdown(no_offers_html(selected), unsafe_allow_html=True)
    for section in sections:
        st.markdown(f"<h2 style='text-align:center'>{html.escape(section.heading)}</h2>", unsafe_allow_html=True)
        views = [present_offer(w, is_permanent=section.is_permanent) for w in section.wrappers]
        for start in range(0, len(views), OFFER_GRID_COLUMNS):
            cols = st.columns(OFFER_GRID_COLUMNS)
            for col, view in zip(cols, views[start:start + OFFER_GRID_COLUMNS]):
                with col:
                    render_offer(view)

st.divider()
st.subheader("Disclaimer")
st.caption(DISCLAIMER)
