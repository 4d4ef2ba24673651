"""Tests for the goal sync event handler run by the receiver."""

from __future__ import annotations

import pytest
from bson import ObjectId

import constants
from receiver import handle_event

BOOK = {"title": "A", "author": "B", "genre": "Fiction"}


@pytest.fixture
def user_id(mongo):
    doc = {"username": "reader", "email": "reader@example.com", "reading_goal": {"yearly": 12, "current": 0}}
    mongo.db[constants.USERS_COLLECTION].insert_one(doc)
    return str(doc["_id"])


def test_status_change_triggers_sync(aggregator, mongo, user_id, goal_current):
    mongo.db[constants.BOOKS_COLLECTION].insert_one({**BOOK, "user_id": user_id, "status": "Read", "date_finished": aggregator.clock()})
    mongo.db[constants.USERS_COLLECTION].update_one({"_id": ObjectId(user_id)}, {"$set": {"reading_goal.current": 5}})

    result = handle_event(aggregator, {"action": constants.BOOK_STATUS_CHANGED, "user_id": user_id})

    assert result == 1
    assert goal_current(user_id) == 1


def test_reconcile_event_triggers_sync(aggregator, user_id, goal_current):
    assert handle_event(aggregator, {"action": constants.GOAL_RECONCILE, "user_id": user_id}) == 0
    assert goal_current(user_id) == 0


def test_other_actions_are_ignored(aggregator, mongo, user_id, goal_current):
    mongo.db[constants.USERS_COLLECTION].update_one({"_id": ObjectId(user_id)}, {"$set": {"reading_goal.current": 5}})

    assert handle_event(aggregator, {"action": constants.BOOK_ADDED, "user_id": user_id}) is None
    assert goal_current(user_id) == 5


def test_event_without_user_is_dropped(aggregator):
    assert handle_event(aggregator, {"action": constants.BOOK_REMOVED}) is None


def test_unknown_user_is_skipped(aggregator, mongo):
    assert handle_event(aggregator, {"action": constants.BOOK_REMOVED, "user_id": str(ObjectId())}) is None
