import uuid

from app.core.logging import redact_secrets


def test_redact_secrets_masks_sensitive_values():
    raw = (
        "authorization=Bearer abc123 "
        "deadline_token=eyJhbGciOi.payload.sig "
        "token=my-token password=my-password "
        "mongodb://admin:hunter2@db:27017"
    )
    masked = redact_secrets(raw)
    assert "abc123" not in masked
    assert "eyJhbGciOi.payload.sig" not in masked
    assert "my-token" not in masked
    assert "my-password" not in masked
    assert "hunter2" not in masked
    assert masked.count("[REDACTED]") >= 5


def test_forged_token_is_rejected(client):
    response = client.get("/leaderboard", headers={"Authorization": "Bearer not-a-real-token"})
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "http_error"


def test_identity_token_cannot_stand_in_for_deadline_token(client, auth):
    teacher = f"teacher-{uuid.uuid4().hex[:8]}"
    student = f"student-{uuid.uuid4().hex[:8]}"
    quiz = {
        "title": "Timed",
        "topic": "quadratic-equations-functions",
        "content_type": "quiz",
        "quiz": {
            "time_limit_minutes": 5,
            "questions": [{"id": "q", "question_type": "identification", "answer_key": ["1"]}],
        },
    }
    quiz_id = client.post("/content", json=quiz, headers=auth(teacher, "teacher")).json()["id"]
    attempt_id = client.post(f"/quizzes/{quiz_id}/attempts", headers=auth(student)).json()["attempt_id"]

    headers = auth(student)
    identity_token = headers["Authorization"].split(" ", 1)[1]
    response = client.post(
        f"/quizzes/attempts/{attempt_id}/submit",
        json={"answers": {"q": "1"}, "deadline_token": identity_token},
        headers=headers,
    )
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "invalid_deadline_token"


def test_attempts_are_private_to_their_student(client, auth):
    quiz = {
        "title": "Open",
        "topic": "quadratic-equations-functions",
        "content_type": "quiz",
        "quiz": {"questions": [{"id": "q", "question_type": "identification", "answer_key": ["1"]}]},
    }
    quiz_id = client.post("/content", json=quiz, headers=auth("teacher-x", "teacher")).json()["id"]
    attempt_id = client.post(f"/quizzes/{quiz_id}/attempts", headers=auth("owner-1")).json()["attempt_id"]

    hijack = client.post(f"/quizzes/attempts/{attempt_id}/submit", json={"answers": {"q": "1"}}, headers=auth("intruder-1"))
    assert hijack.status_code == 403
    assert hijack.json()["error"]["code"] == "permission_denied"

    peek = client.get(f"/quizzes/attempts/{attempt_id}", headers=auth("intruder-1"))
    assert peek.status_code == 403
