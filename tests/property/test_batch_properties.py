"""Property tests for batch add / remove aggregation."""

from __future__ import annotations

from hypothesis import given, settings
from hypothesis import strategies as st

from keypool.pool.store import KeyPoolStore
from keypool.services.batch_actions import BatchLifecycleActions


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

key_values = st.from_regex(r"ms-[A-Za-z0-9]{6,24}", fullmatch=True)

# Mostly well-formed keys with repeats, plus the occasional malformed value
batch_values = st.lists(
    st.one_of(
        st.sampled_from(["ms-aaaa1111", "ms-bbbb2222", "ms-cccc3333"]),
        key_values,
        st.sampled_from(["", "   ", "a b", "x,y"]),
    ),
    min_size=1,
    max_size=30,
)


@settings(max_examples=200)
@given(existing=st.lists(key_values, max_size=5, unique=True), values=batch_values)
def test_batch_add_counts_are_consistent(existing: list[str], values: list[str]) -> None:
    store = KeyPoolStore()
    for value in existing:
        store.add(value)
    actions = BatchLifecycleActions(store=store)

    outcome = actions.batch_add(values)

    well_formed = [v.strip() for v in values if v.strip() and "," not in v and " " not in v.strip()]
    expected_added = [v for v in dict.fromkeys(well_formed) if v not in existing]

    assert outcome.succeeded_count + outcome.failed_count == len(values)
    assert outcome.succeeded_count == len(expected_added)
    assert len(outcome.errors) == outcome.failed_count
    assert [k.value for k in store.list()] == existing + expected_added


@settings(max_examples=200)
@given(
    existing=st.lists(key_values, min_size=1, max_size=10, unique=True),
    extra=st.lists(key_values, max_size=5),
)
def test_batch_remove_counts_are_consistent(existing: list[str], extra: list[str]) -> None:
    store = KeyPoolStore()
    for value in existing:
        store.add(value)
    actions = BatchLifecycleActions(store=store)

    requested = existing[::2] + extra
    outcome = actions.batch_remove(requested)

    removed = set(existing[::2]) | (set(extra) & set(existing))
    assert outcome.succeeded_count + outcome.failed_count == len(requested)
    assert {k.value for k in store.list()} == set(existing) - removed
