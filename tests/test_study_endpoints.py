from datetime import datetime, timedelta, timezone

from asgi_client import call, register_and_login


def _answer(token, word_id, is_correct, **extra):
    payload = {"wordId": word_id, "isCorrect": is_correct, **extra}
    return call("POST", "/api/study/answer", payload=payload, token=token)


def test_health_is_public(temp_db):
    status, data = call("GET", "/api/health")
    assert status == 200
    assert data == {"status": "ok"}


def test_study_routes_require_token(temp_db):
    status, data = call("GET", "/api/study/stats")
    assert status == 401
    assert data == {"detail": "missing or invalid token"}

    status, _ = call("GET", "/api/study/stats", token="not-a-token")
    assert status == 401


def test_register_rejects_duplicate_user(temp_db):
    register_and_login("dup-user")
    status, data = call("POST", "/api/auth/register", payload={"user_id": "dup-user", "password": "another-pass"})
    assert status == 400
    assert data["detail"] == "user_id exists"


def test_login_with_wrong_password_is_rejected(temp_db):
    register_and_login("carol")
    status, _ = call("POST", "/api/auth/login", payload={"user_id": "carol", "password": "wrong-pass"})
    assert status == 401


def test_verify_returns_user(temp_db):
    token = register_and_login("dave")
    status, data = call("GET", "/api/auth/verify", token=token)
    assert status == 200
    assert data == {"user_id": "dave"}


def test_words_are_listed(temp_db):
    token = register_and_login()
    status, data = call("GET", "/api/words", token=token)
    assert status == 200
    assert len(data) == 10
    status, data = call("GET", "/api/words", token=token, query={"level": "advanced"})
    assert status == 200
    assert {w["english"] for w in data} == {"ambiguous", "consequence"}


def test_stats_for_new_user_are_zero(temp_db):
    token = register_and_login()
    status, data = call("GET", "/api/study/stats", token=token)
    assert status == 200
    assert data == {
        "totalStudied": 0,
        "correctAnswers": 0,
        "incorrectAnswers": 0,
        "streak": 0,
        "bestStreak": 0,
    }


def test_answers_drive_stats(temp_db):
    token = register_and_login()
    for outcome in (True, True, False, True):
        status, data = _answer(token, 1, outcome)
        assert status == 200
        assert data == {"message": "answer recorded", "duplicate": False}

    status, data = call("GET", "/api/study/stats", token=token)
    assert status == 200
    assert data["totalStudied"] == 4
    assert data["correctAnswers"] == 3
    assert data["incorrectAnswers"] == 1
    assert data["streak"] == 1
    assert data["bestStreak"] == 2


def test_stats_are_scoped_per_user(temp_db):
    first = register_and_login("first")
    second = register_and_login("second")
    _answer(first, 1, True)
    _answer(first, 2, True)

    _, data = call("GET", "/api/study/stats", token=second)
    assert data["totalStudied"] == 0


def test_unknown_word_is_404(temp_db):
    token = register_and_login()
    status, data = _answer(token, 9999, True)
    assert status == 404
    assert data["detail"] == "word not found"


def test_non_boolean_outcome_is_rejected(temp_db):
    token = register_and_login()
    status, _ = _answer(token, 1, "yes")
    assert status == 422
    status, _ = _answer(token, 1, 1)
    assert status == 422
    status, _ = call("POST", "/api/study/answer", payload={"isCorrect": True}, token=token)
    assert status == 422

    _, data = call("GET", "/api/study/stats", token=token)
    assert data["totalStudied"] == 0


def test_replayed_submission_is_acknowledged_once(temp_db):
    token = register_and_login()
    status, data = _answer(token, 1, True, submissionId="sub-1")
    assert status == 200
    assert data["duplicate"] is False

    status, data = _answer(token, 1, True, submissionId="sub-1")
    assert status == 200
    assert data == {"message": "answer already recorded", "duplicate": True}

    _, stats = call("GET", "/api/study/stats", token=token)
    assert stats["totalStudied"] == 1


def test_client_timestamp_orders_replayed_answers(temp_db):
    token = register_and_login()
    now = datetime.now(timezone.utc)
    # the earlier incorrect answer arrives last, after reconnect
    _answer(token, 1, True, timestamp=now.isoformat())
    _answer(token, 1, False, timestamp=(now - timedelta(minutes=5)).isoformat())

    _, data = call("GET", "/api/study/stats", token=token)
    assert data["streak"] == 1
    assert data["bestStreak"] == 1


def test_daily_stats_are_oldest_first_and_zero_filled(temp_db):
    token = register_and_login()
    _answer(token, 1, True)
    _answer(token, 2, False)

    status, data = call("GET", "/api/study/stats/daily", token=token, query={"days": 3})
    assert status == 200
    assert len(data) == 3
    assert [d["date"] for d in data] == sorted(d["date"] for d in data)
    assert data[0]["totalStudied"] == 0
    assert data[-1] == {
        "date": datetime.now(timezone.utc).date().isoformat(),
        "totalStudied": 2,
        "correctAnswers": 1,
        "incorrectAnswers": 1,
    }


def test_daily_stats_validates_days(temp_db):
    token = register_and_login()
    status, _ = call("GET", "/api/study/stats/daily", token=token, query={"days": 0})
    assert status == 422


def test_history_and_difficult_words_endpoints(temp_db):
    token = register_and_login()
    for outcome in (False, False, False, True):
        _answer(token, 3, outcome)

    status, history = call("GET", "/api/study/history", token=token, query={"limit": 2})
    assert status == 200
    assert len(history) == 2
    assert history[0]["is_correct"] is True

    status, difficult = call("GET", "/api/study/difficult-words", token=token)
    assert status == 200
    assert difficult[0]["english"] == "water"
    assert difficult[0]["accuracy_rate"] == 25.0


def test_words_are_paged(temp_db):
    token = register_and_login()
    status, first = call("GET", "/api/words", token=token, query={"limit": 3})
    assert status == 200
    assert [w["english"] for w in first] == ["apple", "book", "water"]

    status, second = call("GET", "/api/words", token=token, query={"limit": 3, "offset": 3})
    assert status == 200
    assert [w["english"] for w in second] == ["friend", "school", "journey"]

    status, _ = call("GET", "/api/words", token=token, query={"limit": 0})
    assert status == 422


def test_word_detail_and_missing_word(temp_db):
    token = register_and_login()
    status, word = call("GET", "/api/words/3", token=token)
    assert status == 200
    assert word == {"id": 3, "english": "water", "japanese": "水", "level": "basic"}

    status, data = call("GET", "/api/words/9999", token=token)
    assert status == 404
    assert data["detail"] == "word not found"


def test_word_level_counts_are_ordered_by_difficulty(temp_db):
    token = register_and_login()
    status, data = call("GET", "/api/words/stats/levels", token=token)
    assert status == 200
    assert data == [
        {"level": "basic", "count": 5},
        {"level": "intermediate", "count": 3},
        {"level": "advanced", "count": 2},
    ]


def test_me_returns_profile(temp_db):
    status, _ = call("GET", "/api/auth/me")
    assert status == 401

    token = register_and_login("erin")
    status, data = call("GET", "/api/auth/me", token=token)
    assert status == 200
    assert data["user"]["id"] == "erin"
    assert data["user"]["created_at"]
