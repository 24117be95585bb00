from datetime import datetime, timezone

from hypothesis import given
from hypothesis import strategies as st

from git_ferry.conflicts import backup_timestamp
from git_ferry.git_wrapper import parse_porcelain_z
from git_ferry.inventory import classify_empty

# Strategy: Generate file paths as git would print them with -z
# (no NUL, no leading/trailing separator noise)
paths_strategy = st.text(
    alphabet=st.characters(blacklist_characters="\0", blacklist_categories=("Cs",)),
    min_size=1,
)
status_strategy = st.sampled_from([" M", "M ", "MM", "A ", " D", "??", "AM"])


@given(
    entries=st.lists(st.tuples(status_strategy, paths_strategy), unique_by=lambda e: e[1])
)
def test_porcelain_parsing_recovers_every_path(entries: list[tuple[str, str]]) -> None:
    """
    Property: For non-rename entries, parsing returns exactly the paths that were
    serialized, in order, regardless of spaces or unusual characters in names.
    """
    output = "".join(f"{status} {path}\0" for status, path in entries)

    assert parse_porcelain_z(output) == [path for _, path in entries]


@given(
    count=st.integers(min_value=0, max_value=1000),
    names=st.lists(st.text(min_size=1), max_size=5),
)
def test_empty_classification(count: int, names: list[str]) -> None:
    """
    Property: A repository is empty exactly when it has no commits, or one commit
    whose only file is a README.
    """
    expected = count == 0 or (
        count == 1 and len(names) == 1 and names[0].lower().startswith("readme.")
    )

    assert classify_empty(count, names) is expected


@given(
    moment=st.datetimes(
        min_value=datetime(2000, 1, 1),
        max_value=datetime(2999, 12, 31),
        timezones=st.just(timezone.utc),
    )
)
def test_backup_timestamp_is_filename_safe(moment: datetime) -> None:
    """
    Property: Backup stamps never contain path or drive separators and keep a
    fixed width.
    """
    stamp = backup_timestamp(moment)

    assert ":" not in stamp and "." not in stamp and "/" not in stamp
    assert stamp.endswith("Z")
    assert len(stamp) == len("2026-10-18T14-03-12-123Z")
