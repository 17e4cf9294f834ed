import pytest
from fastapi.testclient import TestClient
from coursehub.core.auth import create_token
from coursehub.core.database import RegistrySessionLocal
from coursehub.api.sessions import get_registry
from coursehub.main import app
from coursehub.services.registry import SessionRegistry

EXAM = {
    "title": "Final",
    "duration_minutes": 30,
    "passing_score": 50,
    "questions": [
        {"question_text": "2 + 2?", "options": ["3", "4"], "correct_answer": 1},
        {"question_text": "Capital of France?", "options": ["Paris", "Rome", "Oslo"], "correct_answer": 0, "points": 2},
    ],
}

@pytest.fixture
def registry():
    reg = SessionRegistry(RegistrySessionLocal)
    yield reg
    reg.close_all()

@pytest.fixture
def client(db, registry):
    app.dependency_overrides[get_registry] = lambda: registry
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()

def signup(client, email, role):
    r = client.post("/v1/auth/signup", json={"email": email, "role": role})
    assert r.status_code == 201, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}

@pytest.fixture
def tutor(client):
    return signup(client, "tutor@example.com", "instructor")

@pytest.fixture
def learner(client):
    return signup(client, "learner@example.com", "student")

@pytest.fixture
def published(client, tutor):
    r = client.post("/v1/courses", headers=tutor, json={"title": "Intro", "is_published": True})
    assert r.status_code == 201, r.text
    course_id = r.json()["id"]
    r = client.post(f"/v1/courses/{course_id}/exam", headers=tutor, json=EXAM)
    assert r.status_code == 201, r.text
    return course_id

def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"

def test_signup_rejects_admin_and_duplicates(client):
    r = client.post("/v1/auth/signup", json={"email": "root@example.com", "role": "admin"})
    assert r.status_code == 422
    signup(client, "same@example.com", "student")
    r = client.post("/v1/auth/signup", json={"email": "same@example.com", "role": "student"})
    assert r.status_code == 400
    assert r.json()["error"]["type"] == "invalid_input"

def test_mock_login_and_me(client, learner):
    r = client.post("/v1/auth/mock-login", json={"email": "learner@example.com"})
    assert r.status_code == 200
    token = r.json()["access_token"]
    r = client.get("/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.json()["role"] == "student"

def test_bad_token_is_401(client):
    r = client.get("/v1/courses", headers={"Authorization": "Bearer nope"})
    assert r.status_code == 401
    assert r.json()["error"]["type"] == "http_error"

def test_token_with_unknown_role_is_401(client):
    token = create_token("someone", "superuser")
    r = client.get("/v1/courses", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401

def test_role_gate(client, learner):
    r = client.post("/v1/courses", headers=learner, json={"title": "Mine"})
    assert r.status_code == 403

def test_anonymous_paper_hides_key_and_questions(client, published):
    assert client.get(f"/v1/courses/{published}").status_code == 200
    r = client.get(f"/v1/courses/{published}/exam")
    assert r.status_code == 200
    paper = r.json()
    assert (paper["title"], paper["duration_minutes"], paper["passing_score"]) == ("Final", 30, 50)
    assert paper["questions"] == []

def test_paper_key_visibility(client, tutor, learner, published):
    owner_view = client.get(f"/v1/courses/{published}/exam", headers=tutor).json()
    assert [q["correct_answer"] for q in owner_view["questions"]] == [1, 0]
    student_view = client.get(f"/v1/courses/{published}/exam", headers=learner).json()
    assert [q["correct_answer"] for q in student_view["questions"]] == [None, None]

def test_hidden_course_is_404(client, tutor, learner):
    r = client.post("/v1/courses", headers=tutor, json={"title": "Draft"})
    draft = r.json()["id"]
    hidden = client.get(f"/v1/courses/{draft}", headers=learner)
    missing = client.get("/v1/courses/nothing-here", headers=learner)
    assert hidden.status_code == missing.status_code == 404
    assert hidden.json() == missing.json()

def test_exam_session_flow(client, tutor, learner, published):
    assert client.post(f"/v1/courses/{published}/enroll", headers=learner).status_code == 201

    r = client.post("/v1/exam-sessions", headers=learner, json={"course_id": published})
    assert r.status_code == 201, r.text
    snap = r.json()
    sid = snap["session_id"]
    assert snap["state"] == "ready"
    assert snap["remaining_seconds"] == 1800

    r = client.put(f"/v1/exam-sessions/{sid}/answers/0", headers=learner, json={"choice_index": 1})
    assert r.status_code == 409

    assert client.post(f"/v1/exam-sessions/{sid}/start", headers=learner).json()["state"] == "in_progress"
    r = client.put(f"/v1/exam-sessions/{sid}/answers/1", headers=learner, json={"choice_index": 7})
    assert r.status_code == 400
    client.put(f"/v1/exam-sessions/{sid}/answers/0", headers=learner, json={"choice_index": 1})
    client.put(f"/v1/exam-sessions/{sid}/answers/1", headers=learner, json={"choice_index": 0})

    r = client.post(f"/v1/exam-sessions/{sid}/submit", headers=learner)
    assert r.status_code == 200, r.text
    result = r.json()["result"]
    assert (result["score"], result["passed"], result["certificate_issued"]) == (100, True, True)

    again = client.post(f"/v1/exam-sessions/{sid}/submit", headers=learner).json()["result"]
    assert again["attempt_id"] == result["attempt_id"]

    certs = client.get("/v1/certificates/mine", headers=learner).json()
    assert len(certs) == 1 and certs[0]["course_id"] == published
    enrollments = client.get("/v1/enrollments/mine", headers=learner).json()
    assert enrollments[0]["completed"] and enrollments[0]["certificate_issued"]

    stats = client.get(f"/v1/courses/{published}/exam/analytics", headers=tutor).json()
    assert stats["total_attempts"] == 1 and stats["pass_rate"] == 100.0

    assert client.delete(f"/v1/exam-sessions/{sid}", headers=learner).status_code == 204
    assert client.get(f"/v1/exam-sessions/{sid}", headers=learner).status_code == 404

def test_sessions_are_private(client, learner, published):
    other = signup(client, "other@example.com", "student")
    sid = client.post("/v1/exam-sessions", headers=learner, json={"course_id": published}).json()["session_id"]
    assert client.get(f"/v1/exam-sessions/{sid}", headers=other).status_code == 404

def test_session_for_course_without_exam(client, tutor, learner):
    course_id = client.post("/v1/courses", headers=tutor, json={"title": "Bare", "is_published": True}).json()["id"]
    r = client.post("/v1/exam-sessions", headers=learner, json={"course_id": course_id})
    assert r.status_code == 404
    assert r.json()["error"]["type"] == "exam_not_found"

def test_videos_and_progress(client, tutor, learner, published):
    r = client.post(f"/v1/courses/{published}/videos", headers=tutor,
                    json={"title": "Intro", "video_url": "https://vimeo.com/1"})
    assert r.status_code == 400
    video = client.post(f"/v1/courses/{published}/videos", headers=tutor,
                        json={"title": "Intro", "video_url": "https://youtu.be/abc"}).json()
    assert video["order_index"] == 1
    client.post(f"/v1/courses/{published}/enroll", headers=learner)
    r = client.post(f"/v1/videos/{video['id']}/complete", headers=learner)
    assert r.status_code == 200
    assert r.json()["progress"] == 100
    assert client.post(f"/v1/courses/{published}/access", headers=learner).status_code == 200

def test_invalid_exam_is_rejected(client, tutor):
    course_id = client.post("/v1/courses", headers=tutor, json={"title": "Bad"}).json()["id"]
    bad = dict(EXAM, questions=[{"question_text": "?", "options": ["a", "b"], "correct_answer": 5}])
    r = client.post(f"/v1/courses/{course_id}/exam", headers=tutor, json=bad)
    assert r.status_code == 422
    assert r.json()["error"]["type"] == "validation_error"

def test_video_edit_and_delete(client, tutor, published):
    video = client.post(f"/v1/courses/{published}/videos", headers=tutor,
                        json={"title": "Intro", "description": "Welcome", "video_url": "https://youtu.be/abc"}).json()
    assert video["description"] == "Welcome"
    other = signup(client, "rival@example.com", "instructor")

    r = client.patch(f"/v1/videos/{video['id']}", headers=other, json={"title": "Mine now"})
    assert r.status_code == 404
    assert client.delete(f"/v1/videos/{video['id']}", headers=other).status_code == 404

    r = client.patch(f"/v1/videos/{video['id']}", headers=tutor, json={"title": "Welcome", "order_index": 4})
    assert r.status_code == 200, r.text
    assert (r.json()["title"], r.json()["order_index"], r.json()["description"]) == ("Welcome", 4, "Welcome")

    assert client.delete(f"/v1/videos/{video['id']}", headers=tutor).status_code == 204
    assert client.get(f"/v1/courses/{published}/videos", headers=tutor).json() == []
