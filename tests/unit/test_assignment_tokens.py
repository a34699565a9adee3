from datetime import UTC, datetime, timedelta

from src.domain.services.assignments import build_test_link, generate_test_token


def _token(**overrides) -> str:
    issued = datetime(2025, 1, 6, 9, 0, tzinfo=UTC)
    claims = {
        "student_id": "S1",
        "test_type": "CSI",
        "issued_at": issued,
        "expires_at": issued + timedelta(hours=24),
    }
    claims.update(overrides)
    return generate_test_token("secret", **claims)


def test_token_is_sha256_hex() -> None:
    token = _token()

    assert len(token) == 64
    int(token, 16)


def test_repeat_assignments_get_distinct_tokens() -> None:
    assert _token() != _token()


def test_link_uses_lowercase_test_type_path() -> None:
    link = build_test_link("https://app.example.com/", "CSI", "abc123")

    assert link == "https://app.example.com/test/csi/abc123"
