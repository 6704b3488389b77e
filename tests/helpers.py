STRONG_PASSWORD = "Str0ng!pass"


def register(client, email="ana@example.com", password=STRONG_PASSWORD, name="Ana"):
    response = client.post("/api/auth/register", json={"email": email, "password": password, "name": name})
    assert response.status_code == 201, response.text
    return response.json()


def bearer(session):
    return {"Authorization": f"Bearer {session['token']}"}
