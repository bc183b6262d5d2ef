from datetime import timedelta

import mongomock
import pytest

from database import RATINGS
from errors import AlreadyRated, CooldownActive, InvalidScore, NotFound, Unauthenticated
from ratings import _rerate, get_rating_for, resolve_policy, submit_rating

from conftest import T0


def _rate(db, product, principal, score, at, policy="cooldown"):
    return submit_rating(db, product["id"], principal, score, now=at, policy=policy)


class TestValidation:
    def test_anonymous_caller_is_rejected(self, db, product):
        with pytest.raises(Unauthenticated):
            submit_rating(db, product["id"], None, 4)

    @pytest.mark.parametrize("score", [0, 6, -1, 3.5, "4", True, None])
    def test_score_must_be_integer_between_1_and_5(self, db, product, buyer, score):
        with pytest.raises(InvalidScore):
            submit_rating(db, product["id"], buyer, score)

    def test_unknown_product(self, db, buyer):
        with pytest.raises(NotFound):
            submit_rating(db, "65f000000000000000000000", buyer, 4)

    def test_unknown_policy_is_a_configuration_error(self):
        with pytest.raises(ValueError):
            resolve_policy("sometimes")


class TestFirstRating:
    def test_creates_one_rating(self, db, product, buyer):
        result = _rate(db, product, buyer, 4, T0)

        assert result.status == "created"
        assert result.score == 4
        assert result.rated_at == T0
        stored = get_rating_for(db, product["id"], buyer.user_id)
        assert stored["score"] == 4
        assert db[RATINGS].count_documents({}) == 1

    def test_no_rating_yet(self, db, product, buyer):
        assert get_rating_for(db, product["id"], buyer.user_id) is None

    def test_users_rate_independently(self, db, product, buyer, other_owner):
        _rate(db, product, buyer, 4, T0)
        _rate(db, product, other_owner, 2, T0)
        assert db[RATINGS].count_documents({"product_id": product["id"]}) == 2


class TestOneTimePolicy:
    @pytest.mark.parametrize("elapsed", [timedelta(minutes=1), timedelta(hours=24), timedelta(days=365)])
    def test_second_attempt_is_always_rejected(self, db, product, buyer, elapsed):
        first = _rate(db, product, buyer, 5, T0, policy="one_time")
        assert first.retry_at is None

        with pytest.raises(AlreadyRated):
            _rate(db, product, buyer, 1, T0 + elapsed, policy="one_time")

        assert get_rating_for(db, product["id"], buyer.user_id)["score"] == 5
        assert db[RATINGS].count_documents({}) == 1


class TestCooldownPolicy:
    def test_rerating_inside_window_reports_remaining_time(self, db, product, buyer):
        first = _rate(db, product, buyer, 3, T0)
        assert first.retry_at == T0 + timedelta(hours=24)

        with pytest.raises(CooldownActive) as exc_info:
            _rate(db, product, buyer, 5, T0 + timedelta(hours=23))

        assert exc_info.value.remaining == timedelta(hours=1)
        assert exc_info.value.remaining > timedelta(0)
        assert exc_info.value.retry_after_seconds == 3600
        assert get_rating_for(db, product["id"], buyer.user_id)["score"] == 3

    def test_rerating_after_window_updates_in_place(self, db, product, buyer):
        _rate(db, product, buyer, 3, T0)
        original_id = get_rating_for(db, product["id"], buyer.user_id)["id"]

        result = _rate(db, product, buyer, 5, T0 + timedelta(hours=24))

        assert result.status == "updated"
        stored = get_rating_for(db, product["id"], buyer.user_id)
        assert stored["id"] == original_id
        assert stored["score"] == 5
        assert stored["rated_at"] == T0 + timedelta(hours=24)
        assert stored["created_at"] == T0
        assert db[RATINGS].count_documents({}) == 1

    def test_update_restarts_the_window(self, db, product, buyer):
        _rate(db, product, buyer, 3, T0)
        _rate(db, product, buyer, 4, T0 + timedelta(days=2))

        with pytest.raises(CooldownActive) as exc_info:
            _rate(db, product, buyer, 5, T0 + timedelta(days=2, hours=1))
        assert exc_info.value.remaining == timedelta(hours=23)

    def test_concurrent_rerate_loses_to_the_first_writer(self, db, product, buyer):
        _rate(db, product, buyer, 3, T0)
        stale = db[RATINGS].find_one({"user_id": buyer.user_id})
        # Another request re-rates after we read but before we write
        later = T0 + timedelta(hours=25)
        db[RATINGS].update_one({"_id": stale["_id"]}, {"$set": {"score": 1, "rated_at": later}})

        with pytest.raises(CooldownActive):
            _rerate(db, stale, 5, later)
        assert db[RATINGS].find_one({"_id": stale["_id"]})["score"] == 1


class TestInsertRace:
    @pytest.fixture()
    def stale_lookup(self, db, monkeypatch):
        """Make the first rating lookup miss while another request inserts the row."""
        real_find_one = mongomock.Collection.find_one
        state = {"raced": False}

        def find_one(collection, filter=None, *args, **kwargs):
            if collection.name == RATINGS and not state["raced"]:
                state["raced"] = True
                collection.insert_one({**filter, "score": 2, "created_at": T0, "rated_at": T0})
                return None
            return real_find_one(collection, filter, *args, **kwargs)

        monkeypatch.setattr(mongomock.Collection, "find_one", find_one)

    @pytest.mark.parametrize("policy, error", [("cooldown", CooldownActive), ("one_time", AlreadyRated)])
    def test_losing_insert_is_judged_against_the_winner(self, db, product, buyer, stale_lookup, policy, error):
        with pytest.raises(error):
            _rate(db, product, buyer, 5, T0 + timedelta(hours=1), policy=policy)

        assert db[RATINGS].count_documents({}) == 1
        assert db[RATINGS].find_one({"user_id": buyer.user_id})["score"] == 2


def test_cooldown_message_is_user_facing():
    err = CooldownActive(timedelta(hours=5, minutes=30))
    assert err.detail == "You can rate this product again in 5h 30m"
