from typing import FrozenSet
from uuid import UUID

from pydantic import BaseModel, Field


class CurrentUser(BaseModel):
    """Identity resolved by the auth collaborator. The ledger trusts it as passed."""

    id: UUID
    school_id: UUID
    role: str
    # capability set, e.g. {"payments:allocate", "promotions:create"}
    permissions: FrozenSet[str] = Field(default_factory=frozenset)
