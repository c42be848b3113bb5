"""
Integration tests for the post endpoints.
"""

import pytest


async def create_post(client, headers, **overrides):
    payload = {"title": "Looking for a goalkeeper", "content": "Sunday league, 10am."}
    payload.update(overrides)
    response = await client.post("/posts", headers=headers, json=payload)
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.mark.asyncio
async def test_create_post_records_author(client, auth, sample_user):
    headers, user_id = auth
    response = await client.post("/posts", headers=headers, json={
        "title": "  Looking for players  ", "content": "Anyone free tonight?"
    })

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Post created successfully"
    post = body["data"]
    assert post["title"] == "Looking for players"
    assert post["authorId"] == user_id
    assert post["authorName"] == sample_user["name"]


@pytest.mark.asyncio
async def test_create_post_requires_token(client):
    response = await client.post("/posts", json={"title": "x", "content": "y"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_post_blank_title(client, auth):
    headers, _ = auth
    response = await client.post("/posts", headers=headers, json={"title": "   ", "content": "y"})

    assert response.status_code == 400
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_list_posts_paginated(client, auth):
    headers, _ = auth
    for i in range(3):
        await create_post(client, headers, title=f"Post {i}")

    response = await client.get("/posts?page=1&limit=2", headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 3
    assert body["pages"] == 2
    assert len(body["data"]) == 2


@pytest.mark.asyncio
async def test_get_post(client, auth):
    headers, _ = auth
    post = await create_post(client, headers)

    response = await client.get(f"/posts/{post['_id']}", headers=headers)

    assert response.status_code == 200
    assert response.json()["data"]["title"] == "Looking for a goalkeeper"


@pytest.mark.asyncio
@pytest.mark.parametrize("post_id", ["65f000000000000000000042", "bogus"])
async def test_get_post_not_found(client, auth, post_id):
    headers, _ = auth
    response = await client.get(f"/posts/{post_id}", headers=headers)

    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "Post not found"}


@pytest.mark.asyncio
async def test_author_updates_post(client, auth):
    headers, _ = auth
    post = await create_post(client, headers)

    response = await client.put(f"/posts/{post['_id']}", headers=headers, json={"content": "Now 11am."})

    assert response.status_code == 200
    updated = response.json()["data"]
    assert updated["content"] == "Now 11am."
    assert updated["title"] == post["title"]


@pytest.mark.asyncio
async def test_update_post_without_fields(client, auth):
    headers, _ = auth
    post = await create_post(client, headers)

    response = await client.put(f"/posts/{post['_id']}", headers=headers, json={})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_other_user_cannot_modify_post(client, database, auth, other_auth):
    headers, _ = auth
    other_headers, _ = other_auth
    post = await create_post(client, headers)

    update = await client.put(f"/posts/{post['_id']}", headers=other_headers, json={"title": "Hijacked"})
    delete = await client.delete(f"/posts/{post['_id']}", headers=other_headers)

    assert update.status_code == 403
    assert delete.status_code == 403
    stored = await database.posts.find_one({})
    assert stored["title"] == "Looking for a goalkeeper"


@pytest.mark.asyncio
async def test_author_deletes_post(client, database, auth):
    headers, _ = auth
    post = await create_post(client, headers)

    response = await client.delete(f"/posts/{post['_id']}", headers=headers)

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Post deleted successfully"}
    assert await database.posts.count_documents({}) == 0

    again = await client.delete(f"/posts/{post['_id']}", headers=headers)
    assert again.status_code == 404
