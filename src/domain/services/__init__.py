"""Domain services.

Only the persistence-agnostic engine is re-exported here; the SQL-backed
application services live in ``test_sessions`` and ``assignments``.
"""

from src.domain.services.answers import AnswerSubmissionPipeline
from src.domain.services.concurrency import InMemoryConcurrencyGuard
from src.domain.services.finalizer import CompletionFinalizer
from src.domain.services.lifecycle import SessionLifecycleController
from src.domain.services.sequencer import QuestionSequencer
from src.domain.services.tokens import TokenVerifier

__all__ = [
    "AnswerSubmissionPipeline",
    "CompletionFinalizer",
    "InMemoryConcurrencyGuard",
    "QuestionSequencer",
    "SessionLifecycleController",
    "TokenVerifier",
]
