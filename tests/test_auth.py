from datetime import timedelta

from jose import jwt

from userauth import crud
from userauth.core.security import create_access_token, verify_password


def _token_cookie(res):
    return next(c for c in res.headers.get_list("set-cookie") if c.startswith("token="))


class TestLogin:
    def test_missing_fields(self, client):
        res = client.post("/users/login", json={"email": "a@x.com"})
        assert res.status_code == 400
        assert res.json()["message"] == "Please fill all required fields"

    def test_unknown_user(self, client):
        res = client.post("/users/login", json={"email": "nobody@x.com", "password": "secret1"})
        assert res.status_code == 400
        assert res.json()["message"] == "User not found!"

    def test_wrong_password(self, client, make_user):
        make_user()
        res = client.post("/users/login", json={"email": "a@x.com", "password": "secret2"})
        assert res.status_code == 400
        assert res.json()["message"] == "Invalid email or password"

    def test_success_sets_cookie(self, client, make_user):
        user = make_user()
        res = client.post("/users/login", json={"email": "a@x.com", "password": "secret1"})
        assert res.status_code == 200
        body = res.json()
        assert body["message"] == "Login successful"
        assert body["user"]["id"] == user.id
        assert "HttpOnly" in _token_cookie(res)

        claims = jwt.get_unverified_claims(body["token"])
        assert claims["sub"] == user.id
        assert claims["email"] == "a@x.com"

    def test_logout_clears_cookie(self, client, make_user):
        make_user()
        client.post("/users/login", json={"email": "a@x.com", "password": "secret1"})
        res = client.post("/users/logout")
        assert res.status_code == 200
        assert res.json() == {"message": "Logged out successfully"}
        assert "Max-Age=0" in _token_cookie(res)

        assert client.get("/users/check").json() == {"authenticated": False}


class TestCheckAuthStatus:
    def test_no_cookie(self, client):
        res = client.get("/users/check")
        assert res.status_code == 400
        assert res.json() == {"authenticated": False}

    def test_invalid_token(self, client):
        client.cookies.set("token", "not-a-token")
        res = client.get("/users/check")
        assert res.status_code == 401
        assert res.json() == {"message": "Invalid token", "authenticated": False}

    def test_expired_token(self, client, make_user):
        user = make_user()
        token = create_access_token({"sub": user.id, "email": user.email}, timedelta(minutes=-1))
        client.cookies.set("token", token)
        res = client.get("/users/check")
        assert res.status_code == 401
        assert res.json() == {"message": "Token has expired", "authenticated": False}

    def test_unknown_user(self, client):
        client.cookies.set("token", create_access_token({"sub": "missing", "email": "gone@x.com"}))
        res = client.get("/users/check")
        assert res.status_code == 404
        assert res.json() == {"message": "User not found", "authenticated": False}

    def test_authenticated(self, client, make_user):
        user = make_user()
        client.cookies.set("token", create_access_token({"sub": user.id, "email": user.email}))
        res = client.get("/users/check")
        assert res.status_code == 200
        assert res.json()["authenticated"] is True
        assert res.json()["user"]["id"] == user.id


class TestAuthGate:
    def test_missing_token(self, client):
        res = client.patch("/users/update-profile", json={"bio": "hi"})
        assert res.status_code == 401
        assert res.json() == {"message": "Not authenticated"}
        assert res.headers["www-authenticate"] == "Bearer"

    def test_bad_signature(self, client, make_user):
        user = make_user()
        forged = jwt.encode({"sub": user.id}, "some other secret", algorithm="HS256")
        res = client.patch("/users/update-profile", json={"bio": "hi"},
                           headers={"Authorization": f"Bearer {forged}"})
        assert res.status_code == 401
        assert res.json() == {"message": "Invalid token"}

    def test_expired(self, client, make_user):
        user = make_user()
        token = create_access_token({"sub": user.id}, timedelta(seconds=-5))
        res = client.patch("/users/update-profile", json={"bio": "hi"},
                           headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401
        assert res.json() == {"message": "Token has expired"}

    def test_bare_bearer_header(self, client):
        res = client.patch("/users/update-profile", json={"bio": "hi"}, headers={"Authorization": "Bearer "})
        assert res.status_code == 401

    def test_cookie_is_accepted(self, client, registered):
        res = client.patch("/users/update-profile", json={"bio": "from cookie"})
        assert res.status_code == 200
        assert res.json()["bio"] == "from cookie"


class TestUpdateProfile:
    def test_updates_fields(self, client, bearer, db):
        user, headers = bearer
        res = client.patch("/users/update-profile", headers=headers,
                           json={"name": " Alice  B ", "bio": "hello", "phone": "555"})
        assert res.status_code == 200
        body = res.json()
        assert body["name"] == "Alice B"
        assert body["bio"] == "hello"
        assert body["phone"] == "555"
        assert body["email"] == "a@x.com"

    def test_email_is_not_editable(self, client, bearer):
        user, headers = bearer
        res = client.patch("/users/update-profile", headers=headers, json={"email": "new@x.com"})
        assert res.status_code == 200
        assert res.json()["email"] == "a@x.com"

    def test_password_is_hashed(self, client, bearer, db):
        user, headers = bearer
        client.patch("/users/update-profile", headers=headers, json={"password": "another1"})
        db.expire_all()
        stored = crud.get_user_by_id(db, user.id)
        assert stored.password != "another1"
        assert verify_password("another1", stored.password)

    def test_password_over_bcrypt_limit(self, client, bearer, db):
        user, headers = bearer
        res = client.patch("/users/update-profile", headers=headers, json={"password": "p" * 80})
        assert res.status_code == 400
        assert res.json()["message"] == "Password cannot be longer than 72 bytes"
        db.expire_all()
        assert verify_password("secret1", crud.get_user_by_id(db, user.id).password)

    def test_deleted_user(self, client, bearer, db):
        user, headers = bearer
        db.delete(user)
        db.commit()
        res = client.patch("/users/update-profile", headers=headers, json={"bio": "x"})
        assert res.status_code == 404
        assert res.json() == {"message": "User not found"}


class TestVerifyPassword:
    def test_match(self, client, bearer):
        _, headers = bearer
        res = client.post("/users/verify-password", headers=headers, json={"password": "secret1"})
        assert res.status_code == 200
        assert res.json()["success"] is True

    def test_mismatch(self, client, bearer):
        _, headers = bearer
        res = client.post("/users/verify-password", headers=headers, json={"password": "secret2"})
        assert res.status_code == 400
        assert res.json() == {"message": "Password does not match"}

    def test_empty(self, client, bearer):
        _, headers = bearer
        res = client.post("/users/verify-password", headers=headers, json={})
        assert res.status_code == 400
        assert res.json() == {"message": "password is empty"}
