import pytest

from models.notification import Notification
from services.errors import AuthorizationError, NotFoundError, ValidationError
from services.notification_service import NotificationService


@pytest.fixture
def service(db, presence):
    return NotificationService(db, presence)


def test_notify_creates_unread_record(service, people):
    note = service.notify(people["a"], "new_property_match", "New match", "A new flat matches your search",
                          related_property_id=people["p1"], priority="low")
    assert note.notification_id is not None
    assert note.is_read is False
    assert note.read_at is None
    assert note.sender_id is None
    assert note.priority == "low"


def test_notify_rejects_type_outside_closed_set(service, people):
    with pytest.raises(ValidationError) as exc:
        service.notify(people["a"], "property_approval_needed", "t", "m")
    assert "type" in exc.value.details


@pytest.mark.parametrize("title,message,field", [
    ("", "body", "title"),
    ("x" * 101, "body", "title"),
    ("title", "", "message"),
    ("title", "x" * 501, "message"),
])
def test_notify_bounds_text(service, people, title, message, field):
    with pytest.raises(ValidationError) as exc:
        service.notify(people["a"], "new_message", title, message)
    assert field in exc.value.details


def test_notify_rejects_unknown_priority(service, people):
    with pytest.raises(ValidationError):
        service.notify(people["a"], "new_message", "t", "m", priority="urgent")


def test_notify_unknown_recipient(service):
    with pytest.raises(NotFoundError):
        service.notify(4242, "new_message", "t", "m")


def test_notify_pushes_to_live_connections(service, people, presence, emitter):
    presence.register(people["a"], "sid-a")
    note = service.notify(people["a"], "property_sold", "Sold", "Your listing was sold",
                          action_url="/properties/1")

    assert emitter.calls == [("notification_received", {
        "notificationId": note.notification_id,
        "type": "property_sold",
        "title": "Sold",
        "message": "Your listing was sold",
        "actionUrl": "/properties/1",
        "priority": "medium",
        "createdAt": emitter.calls[0][1]["createdAt"],
    }, "sid-a")]


def test_list_for_user_newest_first_with_unread_count(service, people):
    a = people["a"]
    for i in range(3):
        service.notify(a, "new_message", f"t{i}", f"m{i}")
    service.notify(people["b"], "new_message", "not mine", "m")

    result = service.list_for_user(a, limit=2)
    assert [n["title"] for n in result["notifications"]] == ["t2", "t1"]
    assert result["unreadCount"] == 3
    assert result["pagination"]["total"] == 3


def test_list_for_user_unread_only(service, people):
    a = people["a"]
    first = service.notify(a, "new_message", "first", "m")
    service.notify(a, "new_message", "second", "m")
    service.mark_read(first.notification_id, a)

    result = service.list_for_user(a, unread_only=True)
    assert [n["title"] for n in result["notifications"]] == ["second"]
    assert result["unreadCount"] == 1


def test_mark_read_requires_recipient_and_is_idempotent(service, people):
    note = service.notify(people["a"], "new_message", "t", "m")
    note_id = note.notification_id

    with pytest.raises(AuthorizationError):
        service.mark_read(note_id, people["b"])
    with pytest.raises(NotFoundError):
        service.mark_read(99999, people["a"])

    service.mark_read(note_id, people["a"])
    service.mark_read(note_id, people["a"])
    assert service.unread_count(people["a"]) == 0


def test_mark_all_read(service, people):
    for _ in range(2):
        service.notify(people["a"], "new_message", "t", "m")
    service.notify(people["b"], "new_message", "t", "m")

    assert service.mark_all_read(people["a"]) == 2
    assert service.unread_count(people["a"]) == 0
    assert service.unread_count(people["b"]) == 1


def test_property_approval_produces_exactly_one_notification(service, people, db):
    note = service.on_property_approved(people["p1"], people["a"], moderator_id=people["c"])

    rows = db.query(Notification).filter(Notification.type == "property_approved").all()
    assert len(rows) == 1
    assert rows[0].notification_id == note.notification_id
    assert rows[0].recipient_id == people["a"]
    assert rows[0].related_property_id == people["p1"]
    assert rows[0].message == 'Your property "Sunny 2BR Apartment" has been approved and is now live'


def test_property_rejection_embeds_reason(service, people):
    note = service.on_property_rejected(people["p1"], people["a"], "Photos are blurry")
    assert note.type == "property_rejected"
    assert note.recipient_id == people["a"]
    assert "Reason: Photos are blurry" in note.message


def test_property_rejection_requires_reason(service, people):
    with pytest.raises(ValidationError):
        service.on_property_rejected(people["p1"], people["a"], "   ")


def test_long_rejection_message_is_truncated(service, people):
    note = service.on_property_rejected(people["p1"], people["a"], "r" * 600)
    assert len(note.message) == 500
    assert note.message.endswith("...")
    assert "Reason: rrr" in note.message
