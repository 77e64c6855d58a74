# tests/test_identity_billing.py
import httpx
import pytest
import respx

from chat_gateway.core.errors import AuthError
from chat_gateway.services.billing import BillingError, StripeBilling, is_active
from chat_gateway.services.identity import StaticTokenIdentity, SupabaseIdentity, bearer_token


def test_bearer_token_parsing():
    assert bearer_token("Bearer abc") == "abc"
    assert bearer_token("bearer   abc ") == "abc"
    for bad in (None, "", "Bearer", "Basic abc", "abc"):
        with pytest.raises(AuthError):
            bearer_token(bad)


@pytest.mark.asyncio
async def test_static_tokens_from_env_string():
    identity = StaticTokenIdentity.from_string("t1:u1:u1@example.com, t2:u2,broken")
    u1 = await identity.verify("t1")
    assert (u1.id, u1.email) == ("u1", "u1@example.com")
    assert (await identity.verify("t2")).email is None
    with pytest.raises(AuthError):
        await identity.verify("broken")


@pytest.mark.asyncio
@respx.mock
async def test_supabase_identity_ok():
    route = respx.get("https://db.test/auth/v1/user").mock(
        return_value=httpx.Response(200, json={"id": "u1", "email": "u1@example.com"})
    )
    user = await SupabaseIdentity("https://db.test", "service").verify("user-jwt")
    assert user.id == "u1"
    assert route.calls.last.request.headers["Authorization"] == "Bearer user-jwt"


@pytest.mark.asyncio
@respx.mock
async def test_supabase_identity_rejects_bad_token():
    respx.get("https://db.test/auth/v1/user").mock(return_value=httpx.Response(401, json={"msg": "bad jwt"}))
    with pytest.raises(AuthError):
        await SupabaseIdentity("https://db.test", "service").verify("expired")


@pytest.mark.asyncio
@respx.mock
async def test_supabase_identity_unreachable():
    respx.get("https://db.test/auth/v1/user").mock(side_effect=httpx.ConnectError("down"))
    with pytest.raises(AuthError):
        await SupabaseIdentity("https://db.test", "service").verify("t")


@pytest.mark.asyncio
@respx.mock
async def test_stripe_subscription_status():
    route = respx.get("https://api.stripe.com/v1/subscriptions/sub_1").mock(
        return_value=httpx.Response(200, json={"id": "sub_1", "status": "past_due"})
    )
    status = await StripeBilling("sk_test").subscription_status("sub_1")
    assert status == "past_due"
    assert not is_active(status)
    assert route.calls.last.request.headers["Authorization"] == "Bearer sk_test"


@pytest.mark.asyncio
@respx.mock
async def test_stripe_error_raises_billing_error():
    respx.get("https://api.stripe.com/v1/subscriptions/sub_1").mock(return_value=httpx.Response(404))
    with pytest.raises(BillingError):
        await StripeBilling("sk_test").subscription_status("sub_1")


def test_active_statuses():
    assert is_active("active")
    assert is_active("trialing")
    assert not is_active("canceled")
