"""Tests for the reply decision engine."""

import logging
from dataclasses import replace

from mailbox_client import INBOX_LABEL, MessageRef
from reply_engine import ReplyDecisionEngine, is_excluded


def _refs(mailbox):
    return mailbox.list_unread()


def test_yields_items_in_listing_order(mailbox, engine):
    mailbox.add_unread("m1", "T1")
    mailbox.add_unread("m2", "T2")
    mailbox.add_unread("m3", "T3")

    items = list(engine.work_items(_refs(mailbox), "Label_1"))

    assert [item.message.id for item in items] == ["m1", "m2", "m3"]
    assert all(item.already_handled is False for item in items)


def test_excluded_categories_never_reach_handled_check(mailbox, engine):
    mailbox.add_unread("promo", "TP", categories=["CATEGORY_PROMOTIONS"])
    mailbox.add_unread("social", "TS", categories=["CATEGORY_SOCIAL"])
    mailbox.add_unread("m1", "T1", categories=["CATEGORY_PERSONAL"])

    items = list(engine.work_items(_refs(mailbox), "Label_1"))

    assert [item.message.id for item in items] == ["m1"]
    assert mailbox.calls_named("thread_labels") == [("thread_labels", "T1")]


def test_exclusion_set_is_configurable(mailbox, marker):
    mailbox.add_unread("forum", "TF", categories=["CATEGORY_FORUMS"])
    mailbox.add_unread("promo", "TP", categories=["CATEGORY_PROMOTIONS"])
    engine = ReplyDecisionEngine(mailbox, marker, excluded_categories=["CATEGORY_FORUMS"])

    items = list(engine.work_items(_refs(mailbox), "Label_1"))

    assert [item.message.id for item in items] == ["promo"]


def test_is_excluded_helper(mailbox):
    message = mailbox.add_unread("m1", "T1", categories=["CATEGORY_UPDATES"])

    assert is_excluded(message, {"CATEGORY_UPDATES"}) is True
    assert is_excluded(message, {"CATEGORY_SOCIAL"}) is False
    assert is_excluded(message, set()) is False


def test_vanished_message_is_skipped_silently(mailbox, engine):
    mailbox.add_unread("m1", "T1")
    mailbox.add_unread("m2", "T2")
    mailbox.missing.add("m1")

    items = list(engine.work_items(_refs(mailbox), "Label_1"))

    assert [item.message.id for item in items] == ["m2"]


def test_fetch_failure_only_skips_that_message(mailbox, engine):
    mailbox.add_unread("m1", "T1")
    mailbox.add_unread("m2", "T2")
    mailbox.fail_fetch_for.add("m1")

    items = list(engine.work_items(_refs(mailbox), "Label_1"))

    assert [item.message.id for item in items] == ["m2"]


def test_marks_already_handled_threads(mailbox, engine):
    mailbox.add_unread("m1", "T1")
    mailbox.thread_labels["T1"].add("Label_1")

    (item,) = list(engine.work_items(_refs(mailbox), "Label_1"))

    assert item.already_handled is True


def test_handled_state_is_queried_fresh_for_each_item(mailbox, engine):
    """A second unread message in the same thread sees the marker written after the first."""
    mailbox.add_unread("m1", "T1")
    mailbox.add_unread("m2", "T1")
    refs = [MessageRef(id="m1", thread_id="T1"), MessageRef(id="m2", thread_id="T1")]

    items = engine.work_items(refs, "Label_1")
    first = next(items)
    assert first.already_handled is False
    mailbox.apply_label("T1", "Label_1")
    second = next(items)

    assert second.already_handled is True
    assert mailbox.calls_named("thread_labels") == [("thread_labels", "T1"), ("thread_labels", "T1")]


def test_message_read_after_listing_is_skipped(mailbox, engine):
    message = mailbox.add_unread("m1", "T1")
    mailbox.add_unread("m2", "T2")
    refs = _refs(mailbox)
    mailbox.messages["m1"] = replace(message, label_ids=frozenset({INBOX_LABEL}))

    items = list(engine.work_items(refs, "Label_1"))

    assert [item.message.id for item in items] == ["m2"]
    assert mailbox.calls_named("thread_labels") == [("thread_labels", "T2")]


def test_unexpected_error_only_skips_that_message(mailbox, engine, monkeypatch, caplog):
    mailbox.add_unread("m1", "T1")
    mailbox.add_unread("m2", "T2")
    fetch = mailbox.get_message

    def flaky_fetch(message_id):
        if message_id == "m1":
            raise KeyError("payload")
        return fetch(message_id)

    monkeypatch.setattr(mailbox, "get_message", flaky_fetch)

    with caplog.at_level(logging.ERROR):
        items = list(engine.work_items(_refs(mailbox), "Label_1"))

    assert [item.message.id for item in items] == ["m2"]
    assert "m1" in caplog.text
