"""
API endpoint tests.
"""

import pytest
from httpx import AsyncClient

from app.api import deps
from app.api.main import app
from app.core.rate_limit import InMemoryRateLimitStore, RateLimiter

GENERATE_URL = "/api/v1/personalized/generate"
RETRIEVE_URL = "/api/v1/rag/retrieve"
USER_POSTS_URL = "/api/v1/ingest/user-posts"
VIRAL_POSTS_URL = "/api/v1/ingest/viral-posts"
CREDITS_URL = "/api/v1/credits"


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    """Test health check endpoint."""
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"


@pytest.mark.asyncio
async def test_root_endpoint(client: AsyncClient):
    """Test root endpoint."""
    response = await client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert "name" in data
    assert data["endpoints"]["generate"] == GENERATE_URL


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "headers",
    [{}, {"Authorization": "Bearer not-a-jwt"}, {"Authorization": "Basic abc"}],
)
async def test_generate_requires_valid_token(client: AsyncClient, headers, sample_generate_request):
    response = await client.post(GENERATE_URL, json=sample_generate_request, headers=headers)
    assert response.status_code == 401
    assert response.json()["code"] == "UNAUTHORIZED"


@pytest.mark.asyncio
async def test_generate_success(
    client: AsyncClient,
    auth_headers,
    make_profile,
    mock_user_id,
    sample_user_posts,
    sample_generate_request,
):
    await make_profile(mock_user_id, credits=2)
    ingest = await client.post(USER_POSTS_URL, json={"posts": sample_user_posts}, headers=auth_headers)
    assert ingest.status_code == 201

    response = await client.post(GENERATE_URL, json=sample_generate_request, headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["variantA"]
    assert data["variantB"]
    assert data["generation_id"]
    assert len(data["user_examples_used"]) == 3
    assert data["credits_remaining"] == 1


@pytest.mark.asyncio
async def test_generate_without_credits(
    client: AsyncClient, auth_headers, make_profile, mock_user_id, sample_generate_request
):
    await make_profile(mock_user_id, credits=0)

    response = await client.post(GENERATE_URL, json=sample_generate_request, headers=auth_headers)

    assert response.status_code == 402
    body = response.json()
    assert body["code"] == "INSUFFICIENT_CREDITS"
    assert body["details"]["available"] == 0


@pytest.mark.asyncio
async def test_generate_invalid_fields(client: AsyncClient, auth_headers):
    response = await client.post(
        GENERATE_URL,
        json={"topic": "ab", "intent": "viral"},
        headers=auth_headers,
    )

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "VALIDATION_ERROR"
    assert set(body["details"]["fields"]) == {"topic", "intent"}


@pytest.mark.asyncio
async def test_generate_malformed_output(
    client: AsyncClient,
    auth_headers,
    make_profile,
    mock_user_id,
    sample_generate_request,
    llm_client,
    credit_service,
):
    await make_profile(mock_user_id, credits=1)
    llm_client.content = "not json at all"

    response = await client.post(GENERATE_URL, json=sample_generate_request, headers=auth_headers)

    assert response.status_code == 500
    assert response.json()["code"] == "MALFORMED_GENERATION"
    assert await credit_service.get_balance(mock_user_id) == 1


@pytest.mark.asyncio
async def test_retrieve_then_cache_hit(
    client: AsyncClient, auth_headers, mock_user_id, sample_user_posts
):
    await client.post(USER_POSTS_URL, json={"posts": sample_user_posts}, headers=auth_headers)
    payload = {"topic": "remote leadership", "top_k_user": 2}

    first = await client.post(RETRIEVE_URL, json=payload, headers=auth_headers)
    second = await client.post(RETRIEVE_URL, json=payload, headers=auth_headers)

    assert first.status_code == 200
    first_data = first.json()
    assert first_data["cache_hit"] is False
    assert len(first_data["user_posts"]) == 2
    assert all(p["type"] == "user" for p in first_data["user_posts"])

    second_data = second.json()
    assert second_data["cache_hit"] is True
    assert second_data["query_hash"] == first_data["query_hash"]
    assert [p["id"] for p in second_data["user_posts"]] == [p["id"] for p in first_data["user_posts"]]


@pytest.mark.asyncio
async def test_ingest_user_posts_reports_index(client: AsyncClient, auth_headers):
    response = await client.post(
        USER_POSTS_URL,
        json={"posts": [{"content": "good post"}, {"content": "ok", "likes": -3}]},
        headers=auth_headers,
    )

    assert response.status_code == 400
    details = response.json()["details"]
    assert details["index"] == 1
    assert details["field"] == "likes"


@pytest.mark.asyncio
async def test_viral_ingest_admin_only(
    client: AsyncClient, auth_headers, admin_headers, sample_viral_post
):
    forbidden = await client.post(
        VIRAL_POSTS_URL, json={"posts": [sample_viral_post]}, headers=auth_headers
    )
    assert forbidden.status_code == 403

    created = await client.post(
        VIRAL_POSTS_URL, json={"posts": [sample_viral_post]}, headers=admin_headers
    )
    assert created.status_code == 201
    post_id = created.json()["post_ids"][0]

    deactivated = await client.post(
        f"{VIRAL_POSTS_URL}/{post_id}/deactivate", headers=admin_headers
    )
    assert deactivated.status_code == 200
    assert deactivated.json() == {"id": post_id, "is_active": False}


@pytest.mark.asyncio
async def test_credit_balance(client: AsyncClient, auth_headers, make_profile, mock_user_id):
    missing = await client.get(CREDITS_URL, headers=auth_headers)
    assert missing.status_code == 404

    await make_profile(mock_user_id, credits=7)
    response = await client.get(CREDITS_URL, headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {"user_id": mock_user_id, "credits": 7}


@pytest.mark.asyncio
async def test_rate_limited_request_has_retry_after(
    client: AsyncClient, auth_headers, make_profile, mock_user_id, sample_generate_request
):
    limiter = RateLimiter(InMemoryRateLimitStore(), limits={"generate": 1}, window_seconds=60)
    app.dependency_overrides[deps.get_rate_limiter] = lambda: limiter
    await make_profile(mock_user_id, credits=5)

    first = await client.post(GENERATE_URL, json=sample_generate_request, headers=auth_headers)
    second = await client.post(GENERATE_URL, json=sample_generate_request, headers=auth_headers)

    assert first.status_code == 200
    assert second.status_code == 429
    assert int(second.headers["Retry-After"]) > 0
    assert second.json()["retry_after"] == int(second.headers["Retry-After"])
