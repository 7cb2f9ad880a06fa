from __future__ import annotations

import pytest

ALICE = {"X-User-Id": "alice", "X-User-Nickname": "Alice"}
BOB = {"X-User-Id": "bob"}


@pytest.mark.asyncio
async def test_health_and_metrics_are_exposed(api_client):
    live = await api_client.get("/health/live")
    assert live.status_code == 200
    assert live.json() == {"status": "ok"}
    metrics = await api_client.get("/metrics")
    assert metrics.status_code == 200
    assert "feedcore_http_requests_total" in metrics.text


@pytest.mark.asyncio
async def test_requests_without_identity_are_rejected(api_client):
    resp = await api_client.get("/api/feeds/v1/home")
    assert resp.status_code == 401
    assert resp.json()["detail"] == "missing_identity"


@pytest.mark.asyncio
async def test_post_lifecycle_through_feeds(api_client):
    created = await api_client.post(
        "/api/feeds/v1/posts",
        json={"community_id": "c1", "title": "Hello", "body": "first post"},
        headers=ALICE,
    )
    assert created.status_code == 201
    post = created.json()
    assert post["kind"] == "post"
    assert post["author_nickname"] == "Alice"

    home = await api_client.get("/api/feeds/v1/home", params={"sort": "new"}, headers=ALICE)
    assert home.status_code == 200
    assert home.headers.get("X-Request-Id")
    body = home.json()
    assert [item["id"] for item in body["items"]] == [post["id"]]
    assert body["pagination"]["has_more"] is False
    assert body["partial"] is False

    vote = await api_client.post(f"/api/feeds/v1/posts/{post['id']}/vote", json={"value": 1}, headers=BOB)
    assert vote.status_code == 200
    assert vote.json()["score"] == 1
    assert vote.json()["user_vote"] == 1

    community = await api_client.get("/api/feeds/v1/communities/c1/feed", params={"sort": "top"})
    assert community.json()["items"][0]["upvotes"] == 1

    edited = await api_client.patch(f"/api/feeds/v1/posts/{post['id']}", json={"body": "edited"}, headers=ALICE)
    assert edited.status_code == 200
    assert edited.json()["edited"] is True

    forbidden = await api_client.delete(f"/api/feeds/v1/posts/{post['id']}", headers=BOB)
    assert forbidden.status_code == 403

    deleted = await api_client.delete(f"/api/feeds/v1/posts/{post['id']}", headers=ALICE)
    assert deleted.status_code == 204
    after = await api_client.get("/api/feeds/v1/communities/c1/feed", params={"sort": "new"})
    assert after.json()["items"] == []


@pytest.mark.asyncio
async def test_comment_thread_endpoints(api_client):
    post = (
        await api_client.post("/api/feeds/v1/posts", json={"community_id": "c2", "body": "discuss"}, headers=ALICE)
    ).json()
    root = await api_client.post(f"/api/feeds/v1/posts/{post['id']}/comments", json={"body": "root"}, headers=BOB)
    assert root.status_code == 201
    reply = await api_client.post(
        f"/api/feeds/v1/posts/{post['id']}/comments",
        json={"body": "reply", "parent_id": root.json()["id"]},
        headers=ALICE,
    )
    assert reply.json()["depth"] == 1

    listing = await api_client.get(f"/api/feeds/v1/posts/{post['id']}/comments", params={"sort": "old"})
    assert [item["body"] for item in listing.json()["items"]] == ["root", "reply"]

    removed = await api_client.delete(f"/api/feeds/v1/comments/{root.json()['id']}", headers=BOB)
    assert removed.status_code == 200
    assert removed.json() == {"post_id": post["id"], "deleted": 2, "replies_deleted": 1}

    listing = await api_client.get(f"/api/feeds/v1/posts/{post['id']}/comments", params={"sort": "old"})
    assert listing.json()["items"] == []


@pytest.mark.asyncio
async def test_domain_errors_map_to_http_status(api_client):
    missing = await api_client.get("/api/feeds/v1/communities/nope/feed")
    assert missing.status_code == 404
    assert missing.json()["detail"] == "community_not_found"

    private = await api_client.get("/api/feeds/v1/communities/secret/feed", headers=ALICE)
    assert private.status_code == 403

    no_post = await api_client.get("/api/feeds/v1/posts/nope/comments")
    assert no_post.status_code == 404


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "params",
    [
        {"page_size": 0},
        {"page_size": 101},
        {"sort": "sideways"},
        {"sort": "old"},
    ],
)
async def test_invalid_query_parameters_are_rejected(api_client, params):
    resp = await api_client.get("/api/feeds/v1/home", params=params, headers=ALICE)
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_garbage_cursor_restarts_pagination(api_client):
    await api_client.post("/api/feeds/v1/posts", json={"community_id": "c1", "body": "one"}, headers=ALICE)
    resp = await api_client.get("/api/feeds/v1/home", params={"cursor": "%%%garbage"}, headers=ALICE)
    assert resp.status_code == 200
    assert len(resp.json()["items"]) == 1


@pytest.mark.asyncio
async def test_review_flow_and_acted_exclusion(api_client):
    created = await api_client.post(
        "/api/feeds/v1/reviews",
        json={"community_id": "c1", "label": "red", "target_id": "t-42", "comment": "careful"},
        headers=BOB,
    )
    assert created.status_code == 201
    review_id = created.json()["id"]

    fetched = await api_client.get(f"/api/feeds/v1/reviews/{review_id}", headers=ALICE)
    assert fetched.json()["label"] == "red"

    window = await api_client.get("/api/feeds/v1/reviews/aggregate", headers=ALICE)
    assert window.status_code == 200
    data = window.json()
    assert [item["id"] for item in data["items"]] == [review_id]
    assert data["items"][0]["community_name"] == "Campus"
    assert data["counts"]["red"] == 1

    comment = await api_client.post(
        f"/api/feeds/v1/reviews/{review_id}/comments", json={"body": "noted"}, headers=ALICE
    )
    assert comment.status_code == 201
    comments = await api_client.get(f"/api/feeds/v1/reviews/{review_id}/comments", headers=ALICE)
    assert [row["body"] for row in comments.json()["items"]] == ["noted"]

    voted = await api_client.post(f"/api/feeds/v1/reviews/{review_id}/vote", json={"label": "green"}, headers=ALICE)
    assert voted.json() == {"review_id": review_id, "label": "green"}

    excluded = await api_client.get("/api/feeds/v1/reviews/aggregate", headers=ALICE)
    assert excluded.json()["items"] == []
    included = await api_client.get("/api/feeds/v1/reviews/aggregate", params={"include_acted": "true"}, headers=ALICE)
    assert included.json()["items"][0]["votes"]["green"] == 1
    assert included.json()["vote_counts"]["total"] == 1


@pytest.mark.asyncio
async def test_review_validation_and_not_found(api_client):
    bad_label = await api_client.post(
        "/api/feeds/v1/reviews", json={"community_id": "c1", "label": "purple"}, headers=BOB
    )
    assert bad_label.status_code == 422
    missing = await api_client.get("/api/feeds/v1/reviews/nope", headers=BOB)
    assert missing.status_code == 404
    bad_limit = await api_client.get("/api/feeds/v1/reviews/aggregate", params={"limit": 0}, headers=BOB)
    assert bad_limit.status_code == 422


@pytest.mark.asyncio
async def test_private_posts_stay_out_of_author_and_home_feeds(api_client, store):
    store.add_member("secret", "bob")
    hidden = await api_client.post(
        "/api/feeds/v1/posts", json={"community_id": "secret", "body": "members only"}, headers=BOB
    )
    assert hidden.status_code == 201
    visible = await api_client.post("/api/feeds/v1/posts", json={"community_id": "c1", "body": "hi all"}, headers=BOB)
    store.follow("alice", "bob")

    home = await api_client.get("/api/feeds/v1/home", params={"sort": "new"}, headers=ALICE)
    assert [item["id"] for item in home.json()["items"]] == [visible.json()["id"]]
    anonymous = await api_client.get("/api/feeds/v1/authors/bob/feed")
    assert [item["id"] for item in anonymous.json()["items"]] == [visible.json()["id"]]
    own = await api_client.get("/api/feeds/v1/authors/bob/feed", headers=BOB)
    assert {item["id"] for item in own.json()["items"]} == {hidden.json()["id"], visible.json()["id"]}
