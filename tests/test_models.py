import datetime

import pytest
from pydantic import ValidationError

from votebot.db.models import MediaPlay, MediaVote, User, VoteTally, WriteResult


@pytest.mark.parametrize("value", [1, -1])
def test_vote_accepts_unit_values(value):
    assert MediaVote(user_id="1", play_id=1, vote=value).vote == value


@pytest.mark.parametrize("value", [0, 2, -2])
def test_vote_rejects_other_values(value):
    with pytest.raises(ValidationError):
        MediaVote(user_id="1", play_id=1, vote=value)


def test_play_defaults_played_on_to_now():
    before = datetime.datetime.now()
    play = MediaPlay(user_id="1", video_id="v", title="t", duration=60)

    assert play.played_on >= before


def test_play_rejects_negative_duration():
    with pytest.raises(ValidationError):
        MediaPlay(user_id="1", video_id="v", title="t", duration=-5)


def test_user_rejects_blank_id():
    with pytest.raises(ValidationError):
        User(user_id="  ", username="someone")


def test_defaults():
    assert VoteTally() == VoteTally(positive=0, negative=0)
    assert WriteResult().inserted_id is None
    assert WriteResult().rows_changed == 0
