from __future__ import annotations

from typing import NewType

IssueId = NewType("IssueId", int)
PrincipalId = NewType("PrincipalId", str)
