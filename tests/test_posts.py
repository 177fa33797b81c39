import pytest
from fastapi import status
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

import crud
import errors
import models
from main import app


@pytest.fixture
def author(register):
    return register(name="Author", email="author@example.com")


@pytest.fixture
def reader(register):
    return register(name="Reader", email="reader@example.com")


@pytest.fixture
def post(test_client: TestClient, author):
    response = test_client.post("/api/posts", json={"text": "hello"}, headers=author)
    assert response.status_code == status.HTTP_200_OK, response.text
    return response.json()


def _user_id(test_client: TestClient, headers) -> int:
    return test_client.get("/api/auth", headers=headers).json()["id"]


def test_create_post_snapshots_author(test_client: TestClient, author, post):
    assert post["text"] == "hello"
    assert post["name"] == "Author"
    assert post["avatar"].startswith("https://www.gravatar.com/avatar/")
    assert post["user"] == _user_id(test_client, author)
    assert post["likes"] == []
    assert post["comments"] == []


def test_create_post_requires_text(test_client: TestClient, author):
    response = test_client.post("/api/posts", json={"text": "  "}, headers=author)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"errors": [{"msg": "Text is required"}]}


def test_posts_require_token(test_client: TestClient, post):
    assert test_client.get("/api/posts").status_code == status.HTTP_401_UNAUTHORIZED
    assert test_client.get(f"/api/posts/{post['id']}").status_code == status.HTTP_401_UNAUTHORIZED


def test_list_posts_newest_first(test_client: TestClient, author, post):
    second = test_client.post("/api/posts", json={"text": "second"}, headers=author).json()
    posts = test_client.get("/api/posts", headers=author).json()
    assert [p["id"] for p in posts] == [second["id"], post["id"]]


@pytest.mark.parametrize("post_id", ["999999", "abc"])
def test_get_unknown_or_malformed_post_is_404(test_client: TestClient, author, post_id):
    response = test_client.get(f"/api/posts/{post_id}", headers=author)
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json() == {"msg": "Post not found"}


def test_only_owner_can_delete_post(test_client: TestClient, author, reader, post):
    response = test_client.delete(f"/api/posts/{post['id']}", headers=reader)
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json() == {"msg": "User not authorized"}

    response = test_client.delete(f"/api/posts/{post['id']}", headers=author)
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"msg": "Post removed"}
    assert test_client.get(f"/api/posts/{post['id']}", headers=author).status_code == status.HTTP_404_NOT_FOUND


def test_like_twice_fails(test_client: TestClient, reader, post):
    likes = test_client.put(f"/api/posts/like/{post['id']}", headers=reader).json()
    assert likes == [{"id": likes[0]["id"], "user": _user_id(test_client, reader)}]

    response = test_client.put(f"/api/posts/like/{post['id']}", headers=reader)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"msg": "Post already liked"}
    assert len(test_client.get(f"/api/posts/{post['id']}", headers=reader).json()["likes"]) == 1


def test_likes_are_most_recent_first(test_client: TestClient, author, reader, post):
    test_client.put(f"/api/posts/like/{post['id']}", headers=author)
    likes = test_client.put(f"/api/posts/like/{post['id']}", headers=reader).json()
    assert [like["user"] for like in likes] == [
        _user_id(test_client, reader),
        _user_id(test_client, author),
    ]


def test_unlike_never_liked_fails(test_client: TestClient, reader, post):
    response = test_client.put(f"/api/posts/unlike/{post['id']}", headers=reader)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"msg": "Post has not yet been liked"}


def test_unlike_removes_only_callers_like(test_client: TestClient, author, reader, post):
    test_client.put(f"/api/posts/like/{post['id']}", headers=author)
    test_client.put(f"/api/posts/like/{post['id']}", headers=reader)

    likes = test_client.put(f"/api/posts/unlike/{post['id']}", headers=reader).json()
    assert [like["user"] for like in likes] == [_user_id(test_client, author)]


def test_like_unknown_post_is_404(test_client: TestClient, reader):
    response = test_client.put("/api/posts/like/424242", headers=reader)
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_like_with_token_of_deleted_user_is_404(test_client: TestClient, register, post):
    gone = register(name="Gone", email="gone@example.com")
    assert test_client.delete("/api/profile", headers=gone).status_code == status.HTTP_200_OK

    response = test_client.put(f"/api/posts/like/{post['id']}", headers=gone)
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json() == {"msg": "User not found"}


def test_concurrent_duplicate_like_is_already_liked(
    test_client: TestClient, db_session: Session, reader, post, monkeypatch
):
    reader_id = _user_id(test_client, reader)
    original_get_post = crud.get_post
    calls = {"count": 0}

    def get_post_then_race(db, post_id):
        loaded = original_get_post(db, post_id)
        calls["count"] += 1
        if calls["count"] == 1:
            # Another request stores the same like after this one checked the list
            with Session(bind=db_session.get_bind()) as other:
                other.add(models.Like(post_id=post["id"], user_id=reader_id))
                other.commit()
        return loaded

    monkeypatch.setattr(crud, "get_post", get_post_then_race)
    with pytest.raises(errors.AlreadyLiked):
        crud.like_post(db_session, post["id"], reader_id)
    monkeypatch.undo()

    likes = test_client.get(f"/api/posts/{post['id']}", headers=reader).json()["likes"]
    assert [like["user"] for like in likes] == [reader_id]

    response = test_client.put(f"/api/posts/like/{post['id']}", headers=reader)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"msg": "Post already liked"}


def test_comments_are_prepended_with_snapshot(test_client: TestClient, author, reader, post):
    test_client.post(f"/api/posts/comment/{post['id']}", json={"text": "first"}, headers=author)
    comments = test_client.post(
        f"/api/posts/comment/{post['id']}", json={"text": "second"}, headers=reader
    ).json()

    assert [c["text"] for c in comments] == ["second", "first"]
    assert comments[0]["name"] == "Reader"
    assert comments[0]["user"] == _user_id(test_client, reader)


def test_comment_requires_text(test_client: TestClient, reader, post):
    response = test_client.post(f"/api/posts/comment/{post['id']}", json={}, headers=reader)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"errors": [{"msg": "Text is required"}]}


def test_comment_on_missing_post_is_404(test_client: TestClient, reader):
    response = test_client.post("/api/posts/comment/424242", json={"text": "hi"}, headers=reader)
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_remove_comment_by_its_id(test_client: TestClient, author, reader, post):
    # The reader comments twice; removing the older one must leave the newer one
    first = test_client.post(
        f"/api/posts/comment/{post['id']}", json={"text": "older"}, headers=reader
    ).json()[0]
    test_client.post(f"/api/posts/comment/{post['id']}", json={"text": "newer"}, headers=reader)

    response = test_client.delete(f"/api/posts/comment/{post['id']}/{first['id']}", headers=reader)
    assert response.status_code == status.HTTP_200_OK
    assert [c["text"] for c in response.json()] == ["newer"]


def test_only_comment_author_can_remove_it(test_client: TestClient, author, reader, post):
    comment = test_client.post(
        f"/api/posts/comment/{post['id']}", json={"text": "mine"}, headers=reader
    ).json()[0]

    # Even the post's owner may not delete a reader's comment
    response = test_client.delete(f"/api/posts/comment/{post['id']}/{comment['id']}", headers=author)
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert len(test_client.get(f"/api/posts/{post['id']}", headers=author).json()["comments"]) == 1


def test_remove_missing_comment_is_404(test_client: TestClient, reader, post):
    response = test_client.delete(f"/api/posts/comment/{post['id']}/424242", headers=reader)
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json() == {"msg": "Comment does not exist"}


def test_unexpected_errors_are_plain_500(override_get_db, author, post, monkeypatch):
    def _boom(db):
        raise RuntimeError("database exploded")

    monkeypatch.setattr("crud.list_posts", _boom)
    client = TestClient(app, raise_server_exceptions=False)
    response = client.get("/api/posts", headers=author)
    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.text == "Server Error"
    assert "exploded" not in response.text
