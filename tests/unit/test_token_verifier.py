from __future__ import annotations

import pytest
from src.domain.errors import (
    TestDefinitionUnavailableError,
    TestTypeMismatchError,
    TokenExpiredError,
    TokenInvalidError,
)
from src.domain.models import AssignmentStatus
from src.domain.services.tokens import TokenVerifier

from tests.utils import make_assignment, make_definition


@pytest.fixture()
def verifier(harness) -> TokenVerifier:
    return TokenVerifier(harness.registry, harness.catalog, harness.clock)


class TestTokenVerifier:
    @pytest.mark.asyncio
    async def test_returns_definition_for_pending_token(self, harness, verifier) -> None:
        harness.registry.add(make_assignment(token="tok-1", assigned_at=harness.clock.now()))

        definition = await verifier.verify("tok-1", "CSI")

        assert definition.test_type == "CSI"
        assert [q.question_id for q in definition.questions] == ["csi-q0", "csi-q1", "csi-q2"]

    @pytest.mark.asyncio
    async def test_verification_does_not_consume_the_token(self, harness, verifier) -> None:
        harness.registry.add(make_assignment(token="tok-1", assigned_at=harness.clock.now()))

        await verifier.verify("tok-1", "CSI")
        await verifier.verify("tok-1", "CSI")

        assert harness.registry.status_history == []
        assert harness.catalog.load_calls == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", ["", "   "])
    async def test_rejects_empty_token(self, verifier, token: str) -> None:
        with pytest.raises(TokenInvalidError, match="missing"):
            await verifier.verify(token, "CSI")

    @pytest.mark.asyncio
    async def test_rejects_unknown_token(self, verifier) -> None:
        with pytest.raises(TokenInvalidError):
            await verifier.verify("does-not-exist", "CSI")

    @pytest.mark.asyncio
    async def test_rejects_expired_token(self, harness, verifier) -> None:
        harness.registry.add(
            make_assignment(token="tok-1", assigned_at=harness.clock.now(), ttl_hours=1)
        )
        harness.clock.advance(minutes=60)

        with pytest.raises(TokenExpiredError):
            await verifier.verify("tok-1", "CSI")

    @pytest.mark.asyncio
    async def test_rejects_token_for_other_test_type(self, harness, verifier) -> None:
        harness.registry.add(make_assignment(token="tok-1", assigned_at=harness.clock.now()))

        with pytest.raises(TestTypeMismatchError):
            await verifier.verify("tok-1", "MEMORY")

    @pytest.mark.asyncio
    async def test_unknown_test_type_is_a_mismatch(self, harness, verifier) -> None:
        harness.registry.add(
            make_assignment(token="tok-1", test_type="XYZ", assigned_at=harness.clock.now())
        )

        with pytest.raises(TestTypeMismatchError):
            await verifier.verify("tok-1", "XYZ")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [AssignmentStatus.COMPLETED, AssignmentStatus.FAILED])
    async def test_rejects_consumed_token(self, harness, verifier, status) -> None:
        harness.registry.add(
            make_assignment(token="tok-1", assigned_at=harness.clock.now(), status=status)
        )

        with pytest.raises(TokenInvalidError, match="already been used"):
            await verifier.verify("tok-1", "CSI")

    @pytest.mark.asyncio
    async def test_in_progress_token_still_verifies_after_expiry(self, harness, verifier) -> None:
        harness.registry.add(
            make_assignment(
                token="tok-1",
                assigned_at=harness.clock.now(),
                ttl_hours=1,
                status=AssignmentStatus.IN_PROGRESS,
            )
        )
        harness.clock.advance(minutes=90)

        definition = await verifier.verify("tok-1", "CSI")

        assert definition.question_count == 3

    @pytest.mark.asyncio
    async def test_rejects_test_type_without_questions(self, harness, verifier) -> None:
        harness.catalog.definitions["EMPTY"] = make_definition("EMPTY", question_count=0)
        harness.registry.add(
            make_assignment(token="tok-1", test_type="EMPTY", assigned_at=harness.clock.now())
        )

        with pytest.raises(TestDefinitionUnavailableError):
            await verifier.verify("tok-1", "EMPTY")

    @pytest.mark.asyncio
    async def test_token_bound_to_other_student_is_invalid(self, harness, verifier) -> None:
        harness.registry.add(
            make_assignment(token="tok-1", student_id="S1", assigned_at=harness.clock.now())
        )

        with pytest.raises(TokenInvalidError):
            await verifier.resolve("tok-1", "CSI", student_id="S2")

        resolved = await verifier.resolve("tok-1", "CSI", student_id="S1")
        assert resolved.assignment.student_id == "S1"
