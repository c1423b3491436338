"""Tests for review submission and the rating aggregate."""
import pytest

from folio.domain.errors import ConflictError, NotFoundError, ValidationError
from folio.services.kuzu_review_service import parse_rating


def test_aggregate_is_mean_of_all_reviews(services, make_user, make_book):
    ada = make_user("Ada Reader")
    bob = make_user("Bob Reader")
    book = make_book(ada)

    services.reviews.submit_review(ada.id, book.id, 5, "A triumph.")
    services.reviews.submit_review(bob.id, book.id, 2, "Too long for me.")

    stored = services.books.get_book(book.id)
    assert stored.average_rating == pytest.approx(3.5)
    assert stored.review_count == 2


def test_second_review_by_same_user_conflicts_and_changes_nothing(services, make_user, make_book):
    ada = make_user()
    book = make_book(ada)
    services.reviews.submit_review(ada.id, book.id, 4, "Lovely.")

    with pytest.raises(ConflictError, match="already reviewed"):
        services.reviews.submit_review(ada.id, book.id, 1, "Changed my mind.")

    stored = services.books.get_book(book.id)
    assert stored.average_rating == pytest.approx(4.0)
    assert stored.review_count == 1
    reviews = services.reviews.list_reviews(book.id)
    assert [(r.rating, r.comment) for r in reviews] == [(4, "Lovely.")]


def test_review_keeps_reviewer_name(services, make_user, make_book):
    ada = make_user("Ada Lovelace", email="ada@example.com")
    book = make_book(ada)

    review = services.reviews.submit_review(ada.id, book.id, "3", "  Fine.  ")

    assert review.rating == 3
    assert review.comment == "Fine."
    assert services.reviews.list_reviews(book.id)[0].reviewer_name == "Ada Lovelace"


def test_deleting_a_review_recomputes(services, make_user, make_book):
    ada = make_user("Ada Reader")
    bob = make_user("Bob Reader")
    book = make_book(ada)
    services.reviews.submit_review(ada.id, book.id, 5, "Great.")
    services.reviews.submit_review(bob.id, book.id, 1, "Dull.")

    aggregate = services.reviews.delete_review(bob.id, book.id)
    assert aggregate == {"average_rating": 5.0, "review_count": 1}

    services.reviews.delete_review(ada.id, book.id)
    stored = services.books.get_book(book.id)
    assert stored.average_rating == 0.0
    assert stored.review_count == 0


def test_deleting_missing_review_is_not_found(services, make_user, make_book):
    ada = make_user()
    book = make_book(ada)
    with pytest.raises(NotFoundError):
        services.reviews.delete_review(ada.id, book.id)


def test_review_of_unknown_book_is_not_found(services, make_user):
    ada = make_user()
    with pytest.raises(NotFoundError):
        services.reviews.submit_review(ada.id, "missing", 4, "Where is it?")


def test_empty_comment_is_rejected(services, make_user, make_book):
    ada = make_user()
    book = make_book(ada)
    with pytest.raises(ValidationError):
        services.reviews.submit_review(ada.id, book.id, 4, "   ")
    assert services.books.get_book(book.id).review_count == 0


@pytest.mark.parametrize("value,expected", [(1, 1), (5, 5), ("4", 4), (3.0, 3)])
def test_parse_rating_accepts_whole_numbers_in_range(value, expected):
    assert parse_rating(value) == expected


@pytest.mark.parametrize("value", [0, 6, 2.5, "five", None, True])
def test_parse_rating_rejects_everything_else(value):
    with pytest.raises(ValidationError):
        parse_rating(value)


def test_review_routes(client, reader_session, admin_session, api_book, bearer):
    url = f"/api/books/{api_book['id']}/reviews"

    response = client.post(url, json={"rating": 4, "comment": "Dense but rewarding."},
                           headers=bearer(reader_session["token"]))
    assert response.status_code == 201
    assert response.get_json()["review"]["name"] == "Ada Reader"
    profile = client.get("/api/users/profile", headers=bearer(reader_session["token"])).get_json()
    assert profile["reviewsCount"] == 1

    response = client.post(url, json={"rating": 5, "comment": "Again!"},
                           headers=bearer(reader_session["token"]))
    assert response.status_code == 400
    assert response.get_json()["code"] == "conflict"

    client.post(url, json={"rating": 1, "comment": "No."}, headers=bearer(admin_session["token"]))

    book = client.get(f"/api/books/{api_book['id']}").get_json()
    assert book["rating"] == pytest.approx(2.5)
    assert book["numReviews"] == 2
    assert len(book["reviews"]) == 2

    response = client.delete(url, headers=bearer(admin_session["token"]))
    assert response.status_code == 200
    assert response.get_json()["numReviews"] == 1
    assert response.get_json()["rating"] == pytest.approx(4.0)


def test_review_requires_token(client, api_book):
    response = client.post(f"/api/books/{api_book['id']}/reviews", json={"rating": 4, "comment": "x"})
    assert response.status_code == 401
