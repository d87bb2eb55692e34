import pytest

from votebot.db.gateway import _tally
from votebot.db.models import VoteTally


@pytest.mark.parametrize(
    "rows",
    [
        [{"vote": 1, "num_votes": 3}, {"vote": -1, "num_votes": 2}],
        [{"vote": -1, "num_votes": 2}, {"vote": 1, "num_votes": 3}],
    ],
)
def test_tally_maps_rows_by_polarity_not_position(rows):
    assert _tally(rows) == VoteTally(positive=3, negative=2)


def test_tally_single_positive_row():
    assert _tally([{"vote": 1, "num_votes": 4}]) == VoteTally(positive=4, negative=0)


def test_tally_single_negative_row():
    assert _tally([{"vote": -1, "num_votes": 1}]) == VoteTally(positive=0, negative=1)


def test_tally_no_rows():
    assert _tally([]) == VoteTally()
