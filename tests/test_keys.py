"""
Tests for staging key → final key transformation.
"""

import string

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from pylogexport.executor.keys import staging_root, transform_key

ROOT = "temp/job-1/"

segment = st.text(alphabet=string.ascii_letters + string.digits + "._", min_size=1, max_size=12)
relative_key = st.lists(segment, min_size=1, max_size=4).map("/".join)


def test_example_from_export_layout():
    assert (
        transform_key("temp/job-1/sub/a.gz", ROOT, "2024/06/14")
        == "exported-logs/2024/06/14/sub-a.gz"
    )


def test_custom_destination_prefix():
    assert (
        transform_key("temp/job-1/a.gz", ROOT, "2024/06/14", destination_prefix="archive")
        == "archive/2024/06/14/a.gz"
    )


def test_staging_root_normalizes_trailing_slash():
    assert staging_root("temp", "job-1") == ROOT
    assert staging_root("temp/", "job-1") == ROOT


def test_key_outside_root_is_rejected():
    with pytest.raises(ValueError, match="not under staging root"):
        transform_key("temp/job-2/a.gz", ROOT, "2024/06/14")


def test_root_itself_is_rejected():
    with pytest.raises(ValueError, match="no name below"):
        transform_key(ROOT, ROOT, "2024/06/14")


def test_slash_dash_variants_collide():
    """The flattening is lossy: these two keys share one destination."""
    a = transform_key(ROOT + "a/b-c", ROOT, "2024/06/14")
    b = transform_key(ROOT + "a-b/c", ROOT, "2024/06/14")
    assert a == b == "exported-logs/2024/06/14/a-b-c"


@pytest.mark.property
@given(key=relative_key)
@settings(max_examples=200)
def test_transform_is_deterministic(key):
    first = transform_key(ROOT + key, ROOT, "2024/06/14")
    second = transform_key(ROOT + key, ROOT, "2024/06/14")
    assert first == second
    assert first.startswith("exported-logs/2024/06/14/")
    assert "/" not in first[len("exported-logs/2024/06/14/") :]


@pytest.mark.property
@given(keys=st.sets(relative_key, min_size=2, max_size=30))
@settings(max_examples=200)
def test_distinct_keys_without_dashes_stay_distinct(keys):
    """
    Property: without a dash in any key, distinct staging keys map to
    pairwise-distinct final keys.
    """
    finals = {transform_key(ROOT + key, ROOT, "2024/06/14") for key in keys}
    assert len(finals) == len(keys)
