"""
API tests for authentication, account endpoints and the error envelope.
"""

from fastapi import status

from telem.auth import create_access_token

TEST_PASSWORD = "testpassword123"


def _new_user(username: str) -> dict:
    return {
        "username": username,
        "password": "a-long-password",
        "name": username.title(),
        "email": f"{username}@example.com",
        "phone": "0501112233",
    }


class TestRegistration:

    def test_first_advisor_can_bootstrap(self, client):
        response = client.post("/api/register/advisor", json=_new_user("founder"))

        assert response.status_code == status.HTTP_201_CREATED
        body = response.json()
        assert body["role"] == "advisor"
        assert body["calculatorsCount"] == 0
        assert "passwordHash" not in body
        assert "password" not in body

    def test_further_advisors_need_an_advisor(self, client, advisor, investor_headers, advisor_headers):
        assert client.post("/api/register/advisor", json=_new_user("second")).status_code == status.HTTP_401_UNAUTHORIZED
        assert client.post(
            "/api/register/advisor", json=_new_user("second"), headers=investor_headers
        ).status_code == status.HTTP_403_FORBIDDEN
        assert client.post(
            "/api/register/advisor", json=_new_user("second"), headers=advisor_headers
        ).status_code == status.HTTP_201_CREATED

    def test_advisor_registers_investor(self, client, advisor_headers):
        response = client.post("/api/register", json=_new_user("newinvestor"), headers=advisor_headers)

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["role"] == "investor"

    def test_investor_cannot_register_users(self, client, investor_headers):
        response = client.post("/api/register", json=_new_user("friend"), headers=investor_headers)
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_duplicate_username_conflicts(self, client, advisor_headers, investor):
        response = client.post("/api/register", json=_new_user("investor"), headers=advisor_headers)
        assert response.status_code == status.HTTP_409_CONFLICT


class TestLogin:

    def test_login_returns_usable_token(self, client, investor):
        response = client.post("/api/login", json={"username": "Investor", "password": TEST_PASSWORD})

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["tokenType"] == "bearer"
        assert body["user"]["id"] == investor.id

        me = client.get("/api/user", headers={"Authorization": f"Bearer {body['accessToken']}"})
        assert me.status_code == status.HTTP_200_OK
        assert me.json()["username"] == "investor"

    def test_wrong_password(self, client, investor):
        response = client.post("/api/login", json={"username": "investor", "password": "not-the-password"})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json() == {"message": "Invalid username or password"}


    def test_logout(self, client, investor_headers):
        response = client.post("/api/logout", headers=investor_headers)

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert response.content == b""

    def test_logout_requires_a_token(self, client):
        assert client.post("/api/logout").status_code == status.HTTP_401_UNAUTHORIZED

class TestAuthentication:

    def test_missing_token(self, client):
        response = client.get("/api/user")
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json() == {"message": "Not authenticated"}

    def test_garbage_token(self, client):
        response = client.get("/api/calculators", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_expired_token(self, client, investor):
        token = create_access_token(investor, expires_minutes=-1)
        response = client.get("/api/user", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["message"] == "Token expired"

    def test_deactivated_user_loses_access(self, client, advisor_headers, investor, investor_headers):
        client.patch(f"/api/users/{investor.id}", json={"status": "inactive"}, headers=advisor_headers)

        assert client.get("/api/user", headers=investor_headers).status_code == status.HTTP_401_UNAUTHORIZED


class TestUsers:

    def test_list_investors_is_advisor_only(self, client, advisor_headers, investor_headers, investor, other_investor):
        response = client.get("/api/investors", headers=advisor_headers)
        assert response.status_code == status.HTTP_200_OK
        assert {u["id"] for u in response.json()} == {investor.id, other_investor.id}

        assert client.get("/api/investors", headers=investor_headers).status_code == status.HTTP_403_FORBIDDEN

    def test_investor_updates_own_profile(self, client, investor, investor_headers):
        response = client.patch(f"/api/users/{investor.id}", json={"phone": "0509998877"}, headers=investor_headers)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["phone"] == "0509998877"

    def test_investor_cannot_change_role(self, client, investor, investor_headers):
        response = client.patch(f"/api/users/{investor.id}", json={"role": "advisor"}, headers=investor_headers)

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["disallowedFields"] == ["role"]

    def test_investor_cannot_read_other_users(self, client, other_investor, investor_headers):
        response = client.get(f"/api/users/{other_investor.id}", headers=investor_headers)
        assert response.status_code == status.HTTP_403_FORBIDDEN


class TestErrorEnvelope:

    def test_validation_error_is_400(self, client, advisor_headers):
        response = client.post("/api/register", json={"username": "x"}, headers=advisor_headers)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        body = response.json()
        assert body["message"] == "Validation error"
        assert body["errors"]
        assert {"loc", "msg", "type"} <= set(body["errors"][0])

    def test_unknown_route(self, client):
        response = client.get("/api/nothing-here")
        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert "message" in response.json()

    def test_root(self, client):
        assert client.get("/").json() == "Server is running."
