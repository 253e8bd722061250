from flycloth.core.config import settings
from flycloth.core.security import create_refresh_token

API = settings.API_V1_STR
PASSWORD = "correct-horse-42"


async def _login(client, email: str, password: str = PASSWORD):
    return await client.post(f"{API}/auth/login", data={"username": email, "password": password})


async def test_register_and_login(client):
    res = await client.post(
        f"{API}/auth/register",
        json={"email": "Nurul@FlyCloth.my", "full_name": "Nurul", "password": "longenough1"},
    )
    assert res.status_code == 201, res.text
    body = res.json()
    assert body["email"] == "nurul@flycloth.my"
    assert body["role"] == "user"
    assert body["display_name"] == "Nurul"
    assert "password" not in body

    res = await _login(client, "NURUL@flycloth.my", "longenough1")
    assert res.status_code == 200, res.text
    tokens = res.json()
    assert tokens["token_type"] == "bearer"
    assert tokens["access_token"] and tokens["refresh_token"]

    me = await client.get(f"{API}/users/me", headers={"Authorization": f"Bearer {tokens['access_token']}"})
    assert me.status_code == 200, me.text
    assert me.json()["email"] == "nurul@flycloth.my"


async def test_register_rejects_duplicate_email(client, user):
    res = await client.post(
        f"{API}/auth/register",
        json={"email": "AINA@flycloth.my", "password": "longenough1"},
    )
    assert res.status_code == 400
    assert res.json()["detail"] == "该邮箱已被注册"


async def test_register_validates_password_length(client):
    res = await client.post(f"{API}/auth/register", json={"email": "short@flycloth.my", "password": "abc"})
    assert res.status_code == 422


async def test_login_with_wrong_password(client, user):
    res = await _login(client, user.email, "wrong-password")
    assert res.status_code == 401
    assert res.json()["detail"] == "邮箱或密码错误"


async def test_login_inactive_user(client, db, user):
    user.is_active = False
    await db.commit()

    res = await _login(client, user.email)
    assert res.status_code == 403


async def test_protected_route_requires_token(client):
    res = await client.get(f"{API}/users/me")
    assert res.status_code == 401

    res = await client.get(f"{API}/users/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert res.status_code == 401
    assert res.json()["detail"] == "无法验证凭据"


async def test_refresh_token_cannot_be_used_as_access_token(client, user):
    refresh = create_refresh_token(subject=user.id)
    res = await client.get(f"{API}/users/me", headers={"Authorization": f"Bearer {refresh}"})
    assert res.status_code == 401
    assert res.json()["detail"] == "无效的令牌类型"


async def test_refresh_issues_new_access_token(client, user):
    tokens = (await _login(client, user.email)).json()

    res = await client.post(f"{API}/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["refresh_token"] == tokens["refresh_token"]

    me = await client.get(f"{API}/users/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.status_code == 200

    # 访问令牌不能用于刷新
    res = await client.post(f"{API}/auth/refresh", json={"refresh_token": tokens["access_token"]})
    assert res.status_code == 401
    assert res.json()["detail"] == "无效的刷新令牌"


async def test_logout_blacklists_tokens(client, user):
    tokens = (await _login(client, user.email)).json()
    headers = {"Authorization": f"Bearer {tokens['access_token']}"}

    res = await client.post(f"{API}/auth/logout", headers=headers, json={"refresh_token": tokens["refresh_token"]})
    assert res.status_code == 200, res.text
    assert res.json()["detail"] == "退出登录成功"

    me = await client.get(f"{API}/users/me", headers=headers)
    assert me.status_code == 401
    assert me.json()["detail"] == "令牌已失效"

    res = await client.post(f"{API}/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert res.status_code == 401


async def test_logout_requires_bearer_header(client):
    res = await client.post(f"{API}/auth/logout", headers={"Authorization": "Basic abc"})
    assert res.status_code == 401


async def test_update_profile(client, user_headers):
    res = await client.put(
        f"{API}/users/me",
        headers=user_headers,
        json={"phone": "+60 12-345 6789", "address": "12 Jalan Ampang, Kuala Lumpur"},
    )
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["phone"] == "+60 12-345 6789"
    assert body["full_name"] == "Aina Rahman"

    res = await client.put(f"{API}/users/me", headers=user_headers, json={"phone": "call-me"})
    assert res.status_code == 422


async def test_change_password(client, user, user_headers):
    res = await client.post(
        f"{API}/users/me/password",
        headers=user_headers,
        json={"current_password": "nope-nope", "new_password": "brand-new-pass"},
    )
    assert res.status_code == 400
    assert res.json()["detail"] == "当前密码错误"

    res = await client.post(
        f"{API}/users/me/password",
        headers=user_headers,
        json={"current_password": PASSWORD, "new_password": PASSWORD},
    )
    assert res.status_code == 400

    res = await client.post(
        f"{API}/users/me/password",
        headers=user_headers,
        json={"current_password": PASSWORD, "new_password": "brand-new-pass"},
    )
    assert res.status_code == 200, res.text

    assert (await _login(client, user.email)).status_code == 401
    assert (await _login(client, user.email, "brand-new-pass")).status_code == 200
