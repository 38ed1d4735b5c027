from errors import GenerationFailure


def test_root_reports_demo_mode(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["demo_mode"] is True


def test_taxonomy(client):
    body = client.get("/taxonomy").json()
    assert {"id": "solo_female", "label": "Solo Female Safety"} in body["priorities"]


def test_demo_sign_in_without_backend(client):
    response = client.post("/auth/signin", json={"email": "demo@safepassage.network", "password": "DemoPass2024!"})
    assert response.status_code == 200
    body = response.json()
    assert body["token"]
    assert body["demo_mode"] is True
    assert body["profile"]["name"] == "Sarah Chen"


def test_sign_in_validation(client):
    response = client.post("/auth/signin", json={"email": "", "password": ""})
    assert response.status_code == 422


def test_sign_up_short_password_is_validation_error(client):
    response = client.post("/auth/signup", json={"email": "a@b.com", "password": "12345", "name": "A"})
    assert response.status_code == 422
    assert "6 characters" in response.json()["detail"]


def test_sign_up_unavailable_in_demo_mode(client):
    response = client.post("/auth/signup", json={"email": "a@b.com", "password": "123456", "name": "A"})
    assert response.status_code == 401


def test_protected_routes_need_token(client):
    assert client.get("/profile").status_code == 401
    assert client.get("/profile", headers={"Authorization": "Bearer nope"}).status_code == 401


def test_profile_read_and_update(client, auth_headers):
    assert client.get("/profile", headers=auth_headers).json()["name"] == "Sarah Chen"
    response = client.put("/profile", headers=auth_headers,
                          json={"location": "Oakland, CA", "priorities": ["Neurodivergent Friendly"]})
    assert response.status_code == 200
    body = response.json()
    assert body["location"] == "Oakland, CA"
    assert body["priorities"] == ["neurodivergent"]


def test_search_reset_cycle(client, auth_headers):
    response = client.post("/matches/search", headers=auth_headers, json={
        "destination": "Kyoto",
        "priorities": ["accessibility"],
        "styles": [],
    })
    assert response.status_code == 200
    body = response.json()
    assert body["state"] == "RESULTS"
    assert [r["profile"]["name"] for r in body["results"]] == ["Alex Rivera", "Jordan Kim"]

    assert client.post("/matches/search", headers=auth_headers, json={
        "destination": "Kyoto", "priorities": ["accessibility"],
    }).status_code == 409

    assert client.post("/matches/reset", headers=auth_headers).json()["state"] == "INPUT"


def test_search_requires_priority(client, auth_headers):
    response = client.post("/matches/search", headers=auth_headers,
                           json={"destination": "Kyoto", "priorities": [], "styles": []})
    assert response.status_code == 422
    assert client.get("/matches/search", headers=auth_headers).json()["state"] == "INPUT"


def test_icebreaker_success(client, auth_headers, fake_gemini):
    fake_gemini.text = "Hi Alex! Shall we vet hostels together?"
    client.post("/matches/search", headers=auth_headers,
                json={"destination": "Austin", "priorities": ["accessibility"], "styles": []})
    response = client.post("/matches/mock-user-2/icebreaker", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["message"] == "Hi Alex! Shall we vet hostels together?"
    assert "Accessible Travel (Mobility)" in fake_gemini.calls[-1]["prompt"]
    state = client.get("/matches/search", headers=auth_headers).json()
    assert state["icebreakers"]["mock-user-2"] == "Hi Alex! Shall we vet hostels together?"
    assert state["busy"] == []


def test_icebreaker_fallback(client, auth_headers, fake_gemini):
    fake_gemini.error = GenerationFailure("down")
    client.post("/matches/search", headers=auth_headers,
                json={"destination": "Austin", "priorities": ["solo_female"], "styles": []})
    response = client.post("/matches/mock-user-4/icebreaker", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["message"] == "Hi Jordan Kim, I noticed we both care about Solo Female Safety. Would love to connect!"


def test_icebreaker_unknown_target(client, auth_headers):
    client.post("/matches/search", headers=auth_headers,
                json={"destination": "Austin", "priorities": ["solo_female"], "styles": []})
    assert client.post("/matches/nobody/icebreaker", headers=auth_headers).status_code == 404


def test_itinerary(client, auth_headers, fake_gemini):
    fake_gemini.citations = [{"web": {"uri": "https://a.com/x"}}, {"web": {"uri": "https://a.com/x"}}]
    response = client.post("/itinerary", headers=auth_headers, json={
        "destination": "Kyoto",
        "priorities": ["solo_female", "accessibility"],
        "days": 3,
        "itinerary_types": ["sightseeing"],
    })
    assert response.status_code == 200
    body = response.json()
    assert body["markdown"].startswith("## Safety & Ethics Briefing")
    assert body["sources"] == [{"title": "a.com", "uri": "https://a.com/x"}]


def test_itinerary_uses_profile_priorities(client, auth_headers, fake_gemini):
    response = client.post("/itinerary", headers=auth_headers, json={
        "destination": "Lima", "priorities": [], "days": 2, "use_profile_data": True,
    })
    assert response.status_code == 200
    prompt = fake_gemini.calls[-1]["prompt"]
    assert "Minority Community Support" in prompt
    assert "Food Exploration, Cultural Immersion" in prompt


def test_itinerary_failure_is_retry_prompt(client, auth_headers, fake_gemini):
    fake_gemini.error = GenerationFailure("quota")
    response = client.post("/itinerary", headers=auth_headers, json={
        "destination": "Kyoto", "priorities": ["solo_female"], "days": 3,
    })
    assert response.status_code == 502
    assert "try again" in response.json()["detail"]


def test_itinerary_validation(client, auth_headers, fake_gemini):
    response = client.post("/itinerary", headers=auth_headers, json={
        "destination": "Kyoto", "priorities": ["solo_female"], "days": 4,
    })
    assert response.status_code == 422
    assert fake_gemini.calls == []


def test_report(client, auth_headers):
    ok = client.post("/reports", headers=auth_headers, json={"reason": "Outdated information", "content": "Day 1"})
    assert ok.status_code == 200
    assert ok.json()["status"] == "received"
    assert client.post("/reports", headers=auth_headers, json={"reason": "meh"}).status_code == 422


def test_sign_out_forgets_token(client, auth_headers):
    assert client.post("/auth/signout", headers=auth_headers).status_code == 200
    assert client.get("/auth/session", headers=auth_headers).status_code == 401
