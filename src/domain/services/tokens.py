"""
Token verification for test access links.

A token is exchanged for an immutable TestDefinition. Verification never
consumes the token; consumption happens when the session starts.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog
from src.core.clock import Clock, SystemClock, ensure_aware
from src.core.logging import token_prefix
from src.domain.errors import (
    TestDefinitionUnavailableError,
    TestTypeMismatchError,
    TokenExpiredError,
    TokenInvalidError,
)
from src.domain.interfaces import AssignmentRegistry, TestCatalog
from src.domain.models import Assignment, AssignmentStatus, TestDefinition

logger = structlog.get_logger()


@dataclass(slots=True)
class ResolvedToken:
    assignment: Assignment
    definition: TestDefinition


class TokenVerifier:
    """Validates access tokens against the assignment registry and catalog."""

    def __init__(
        self,
        registry: AssignmentRegistry,
        catalog: TestCatalog,
        clock: Clock | None = None,
    ) -> None:
        self.registry = registry
        self.catalog = catalog
        self.clock = clock or SystemClock()

    async def verify(self, token: str, test_type: str) -> TestDefinition:
        resolved = await self.resolve(token, test_type)
        return resolved.definition

    async def resolve(
        self, token: str, test_type: str, *, student_id: str | None = None
    ) -> ResolvedToken:
        """
        Resolve a token to its assignment and a freshly loaded test definition.

        When ``student_id`` is given the token must also be bound to that student;
        a token presented by someone else is reported as invalid rather than
        revealing that it exists.
        """
        if not token or not token.strip():
            raise TokenInvalidError("Token is missing")

        assignment = await self.registry.get_by_token(token)
        if assignment is None:
            logger.info("token_unknown", token=token_prefix(token), test_type=test_type)
            raise TokenInvalidError()

        if student_id is not None and assignment.student_id != student_id:
            logger.warning(
                "token_student_mismatch",
                token=token_prefix(token),
                assignment_id=assignment.assignment_id,
            )
            raise TokenInvalidError()

        if assignment.test_type != test_type or not await self.catalog.has_test_type(test_type):
            raise TestTypeMismatchError(
                f"Token is bound to test type '{assignment.test_type}', not '{test_type}'"
            )

        if assignment.status in AssignmentStatus.terminal_statuses():
            raise TokenInvalidError("Token has already been used")

        now = self.clock.now()
        if assignment.status is AssignmentStatus.PENDING and ensure_aware(
            assignment.expires_at
        ) <= now:
            raise TokenExpiredError()

        definition = await self.catalog.load_definition(test_type)
        if definition is None or not definition.questions:
            raise TestDefinitionUnavailableError()

        logger.debug(
            "token_verified",
            token=token_prefix(token),
            assignment_id=assignment.assignment_id,
            test_type=test_type,
            question_count=definition.question_count,
        )
        return ResolvedToken(assignment=assignment, definition=definition)
