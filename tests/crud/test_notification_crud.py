# tests/crud/test_notification_crud.py
from signup_service.crud.crud_notification import notification as crud_notification
from tests.utils.factories import add_notification


def test_search_matches_description_case_insensitively(db_session):
    match = add_notification(db_session, user_id="u1", title="Removed", description="Removed from ROBOTICS")
    add_notification(db_session, user_id="u1", title="Other", description="Nothing here")
    add_notification(db_session, user_id="u2", title="Robotics", description="Robotics for u2")

    items, total = crud_notification.get_for_user(db_session, user_id="u1", search="  robotics ")

    assert [n.id for n in items] == [match.id]
    assert total == 1


def test_mark_all_read_counts_only_unread_rows_of_the_user(db_session):
    add_notification(db_session, user_id="u1")
    add_notification(db_session, user_id="u1")
    add_notification(db_session, user_id="u1", is_read=True)
    add_notification(db_session, user_id="u2")

    assert crud_notification.mark_all_read(db_session, user_id="u1") == 2
    db_session.commit()

    _, unread = crud_notification.get_for_user(db_session, user_id="u1", unread_only=True)
    _, other_unread = crud_notification.get_for_user(db_session, user_id="u2", unread_only=True)
    assert (unread, other_unread) == (0, 1)
