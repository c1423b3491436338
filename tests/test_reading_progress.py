"""Tests for reading progress: one entry per (user, book) and the read counter."""
import pytest

from folio.domain.errors import NotFoundError, ValidationError


def test_first_save_counts_a_read(services, make_user, make_book):
    reader = make_user()
    book = make_book(reader)

    progress = services.progress.record_progress(reader.id, book.id, 12, 880)

    assert progress.current_page == 12
    assert services.books.get_book(book.id).read_count == 1
    assert services.progress.count_entries(reader.id, book.id) == 1


def test_repeat_saves_replace_the_entry_without_counting_again(services, make_user, make_book):
    reader = make_user()
    book = make_book(reader)

    first = services.progress.record_progress(reader.id, book.id, 12, 880)
    services.progress.record_progress(reader.id, book.id, 40, 880)
    latest = services.progress.record_progress(reader.id, book.id, 3, 880)

    assert services.books.get_book(book.id).read_count == 1
    assert services.progress.count_entries(reader.id, book.id) == 1
    stored = services.progress.get_progress(reader.id, book.id)
    assert stored.current_page == 3
    assert stored.last_read == latest.last_read
    assert stored.last_read > first.last_read


def test_each_reader_counts_once(services, make_user, make_book):
    ada = make_user("Ada Reader")
    bob = make_user("Bob Reader")
    book = make_book(ada)

    services.progress.record_progress(ada.id, book.id, 1, 880)
    services.progress.record_progress(bob.id, book.id, 1, 880)
    services.progress.record_progress(bob.id, book.id, 2, 880)

    assert services.books.get_book(book.id).read_count == 2


def test_page_beyond_total_is_stored_as_given(services, make_user, make_book):
    reader = make_user()
    book = make_book(reader, pages=10)

    progress = services.progress.record_progress(reader.id, book.id, 25, 10)

    assert progress.current_page == 25
    assert progress.percent_complete == 100.0


def test_list_is_most_recent_first(services, make_user, make_book):
    reader = make_user()
    first = make_book(reader, title="Emma", author="Jane Austen")
    second = make_book(reader, title="Persuasion", author="Jane Austen")

    services.progress.record_progress(reader.id, first.id, 5, 400)
    services.progress.record_progress(reader.id, second.id, 9, 300)
    services.progress.record_progress(reader.id, first.id, 6, 400)

    entries = services.progress.list_progress(reader.id)
    assert [entry.book_id for entry in entries] == [first.id, second.id]
    assert entries[0].book.title == "Emma"


@pytest.mark.parametrize("current,total", [(-1, 10), (1.5, 10), ("ten", 10), (True, 10), (1, None)])
def test_invalid_positions_are_rejected(services, make_user, make_book, current, total):
    reader = make_user()
    book = make_book(reader)
    with pytest.raises(ValidationError):
        services.progress.record_progress(reader.id, book.id, current, total)
    assert services.books.get_book(book.id).read_count == 0


def test_unknown_book_is_not_found(services, make_user):
    reader = make_user()
    with pytest.raises(NotFoundError):
        services.progress.record_progress(reader.id, "missing", 1, 10)


def test_missing_book_id_is_rejected(services, make_user):
    reader = make_user()
    with pytest.raises(ValidationError):
        services.progress.record_progress(reader.id, None, 1, 10)


def test_progress_routes(client, reader_session, api_book, bearer):
    headers = bearer(reader_session["token"])

    response = client.put("/api/users/progress", json={
        "bookId": api_book["id"], "currentPage": 44, "totalPages": 880,
    }, headers=headers)
    assert response.status_code == 200
    assert response.get_json()["progress"]["currentPage"] == 44

    response = client.get(f"/api/users/progress/{api_book['id']}", headers=headers)
    assert response.status_code == 200
    assert response.get_json()["percentComplete"] == 5.0

    assert client.get(f"/api/books/{api_book['id']}").get_json()["reads"] == 1

    listed = client.get("/api/users/progress", headers=headers).get_json()
    assert [entry["bookId"] for entry in listed] == [api_book["id"]]


def test_progress_for_unread_book_is_404(client, reader_session, api_book, bearer):
    response = client.get(f"/api/users/progress/{api_book['id']}", headers=bearer(reader_session["token"]))
    assert response.status_code == 404
