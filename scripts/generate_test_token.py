#!/usr/bin/env python3
"""Generate JWT bearer tokens for manual API testing."""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.api.deps import issue_smoke_token
from src.core.auth import Role

student_id = sys.argv[1] if len(sys.argv) > 1 else "student-test"

teacher_token = issue_smoke_token("teacher-test", role=Role.TEACHER)
print(f"Teacher Token:\n{teacher_token}\n")

student_token = issue_smoke_token(student_id, role=Role.STUDENT)
print(f"Student Token ({student_id}):\n{student_token}")
