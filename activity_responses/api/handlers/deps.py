from __future__ import annotations

from dataclasses import dataclass

from activity_responses.domain.contracts import IdentityProvider
from activity_responses.domain.identity import Principal
from activity_responses.domain.use_cases.submissions import SubmissionService


@dataclass(frozen=True)
class ApiDeps:
    service: SubmissionService
    identity_provider: IdentityProvider | None = None

    def principal_for(self, token: str | None) -> Principal | None:
        if token is None or self.identity_provider is None:
            return None
        return self.identity_provider.principal(token)
