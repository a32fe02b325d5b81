from __future__ import annotations

import pytest

from shukusho_resizer.size_format import format_file_size


@pytest.mark.parametrize(
    ("size", "expected"),
    [
        (0, "0.00 B"),
        (1023, "1023.00 B"),
        (1024, "1.00 kB"),
        (1536, "1.50 kB"),
        (5 * 1024 * 1024, "5.00 MB"),
        (3 * 1024**3, "3.00 GB"),
    ],
)
def test_format_file_size_picks_largest_unit_below_1024(size: int, expected: str) -> None:
    assert format_file_size(size) == expected


def test_format_file_size_stays_in_tb_beyond_1024_tb() -> None:
    assert format_file_size(2048 * 1024**4) == "2048.00 TB"


def test_format_file_size_rejects_negative() -> None:
    with pytest.raises(ValueError):
        format_file_size(-1)
