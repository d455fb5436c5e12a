"""Tests for reply counts and latest-reply previews."""
from sqlalchemy.orm import Session

from coursechat.services import messages as message_store
from coursechat.services.threads import build_parent_update, preview_for, reply_summaries


def test_reply_summary_after_one_reply(db: Session, users, course):
    """One reply is counted and previewed."""
    parent = message_store.create_text_message(
        db, course_id=course.id, sender_id=users["student"].id, content="When is the exam?"
    ).message
    message_store.create_reply(
        db,
        course_id=course.id,
        sender_id=users["student2"].id,
        parent_message_id=parent.id,
        content="Reply1",
    )

    summaries = reply_summaries(db, [parent.id])

    assert summaries[parent.id].reply_count == 1
    assert summaries[parent.id].latest_reply.preview == "Reply1"
    assert summaries[parent.id].latest_reply.sender.id == users["student2"].id


def test_message_without_replies(db: Session, users, course, make_message):
    """No replies yields a zero count and no preview."""
    parent = make_message(course, users["student"], "Anyone here?")

    summary = reply_summaries(db, [parent.id])[parent.id]

    assert summary.reply_count == 0
    assert summary.latest_reply is None


def test_deleted_replies_are_not_counted(db: Session, users, course, make_message):
    """Moderated replies disappear from count and preview."""
    parent = make_message(course, users["student"], "Topic")
    make_message(course, users["student2"], "Visible", minutes=1, parent=parent)
    make_message(course, users["student2"], "Removed", minutes=2, parent=parent, deleted=True)

    summary = reply_summaries(db, [parent.id])[parent.id]

    assert summary.reply_count == 1
    assert summary.latest_reply.preview == "Visible"


def test_latest_reply_breaks_ties_by_id(db: Session, users, course, make_message):
    """Replies with the same timestamp resolve to the higher id."""
    parent = make_message(course, users["student"], "Topic")
    make_message(course, users["student"], "first", minutes=5, parent=parent)
    second = make_message(course, users["student2"], "second", minutes=5, parent=parent)

    summary = reply_summaries(db, [parent.id])[parent.id]

    assert summary.reply_count == 2
    assert summary.latest_reply.id == second.id


def test_summaries_for_several_parents(db: Session, users, course, make_message):
    """Each parent gets its own count; unknown ids get empty summaries."""
    first = make_message(course, users["student"], "A")
    second = make_message(course, users["student"], "B", minutes=1)
    make_message(course, users["student2"], "a1", minutes=2, parent=first)
    make_message(course, users["student2"], "a2", minutes=3, parent=first)
    make_message(course, users["lecturer"], "b1", minutes=4, parent=second)

    summaries = reply_summaries(db, [first.id, second.id, 424242])

    assert summaries[first.id].reply_count == 2
    assert summaries[first.id].latest_reply.preview == "a2"
    assert summaries[second.id].reply_count == 1
    assert summaries[second.id].latest_reply.preview == "b1"
    assert summaries[424242].reply_count == 0


def test_preview_falls_back_to_file_name(db: Session, users, course, make_message):
    """A reply without text previews as its attachment name."""
    parent = make_message(course, users["lecturer"], "Upload slides")
    make_message(course, users["student"], None, minutes=1, parent=parent, attachment_name="slides.pdf")

    summary = reply_summaries(db, [parent.id])[parent.id]

    assert summary.latest_reply.preview == "slides.pdf"


def test_preview_trims_content(db: Session, users, course, make_message):
    message = make_message(course, users["student"], "  padded  ")
    assert preview_for(message) == "padded"


def test_build_parent_update(db: Session, users, course, make_message):
    parent = make_message(course, users["student"], "Topic")
    make_message(course, users["student2"], "ok", minutes=1, parent=parent)

    update = build_parent_update(db, parent)

    assert update.course_id == course.id
    assert update.message_id == parent.id
    assert update.reply_count == 1
