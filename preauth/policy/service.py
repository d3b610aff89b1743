"""
Policy Service

One policy per merchant. Reads never create records: a merchant that
has never saved a policy gets the defaults. The first update persists
a complete record (defaults plus the update); later updates patch it.
Policies are never deleted.
"""

from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from ..errors import PolicyValidationError
from ..schemas import PolicyUpdate, RiskPolicy
from ..store import OrderStore
from ..utils import Clock, get_logger, utc_now
from .validation import validate_policy

logger = get_logger("policy")


def load_default_policy(path: Optional[Path] = None) -> RiskPolicy:
    """
    Load the default merchant policy from YAML.

    Falls back to the built-in defaults when the file is missing.

    Raises:
        PolicyValidationError: file exists but does not describe a valid policy
    """
    if path is None or not path.exists():
        return RiskPolicy()

    with open(path) as f:
        config = yaml.safe_load(f) or {}

    try:
        policy = RiskPolicy(**config)
    except ValidationError as e:
        raise PolicyValidationError(f"Invalid default policy in {path}: {e}") from e

    validate_policy(policy)
    logger.info("Loaded default policy from %s", path)
    return policy


class PolicyService:
    """Reads and writes merchant risk policies."""

    def __init__(
        self,
        store: OrderStore,
        defaults: Optional[RiskPolicy] = None,
        clock: Clock = utc_now,
    ):
        self.store = store
        self.defaults = defaults or RiskPolicy()
        self.clock = clock

    async def get_policy(self, merchant_id: str) -> RiskPolicy:
        """Stored policy, or a copy of the defaults when none was saved."""
        stored = await self.store.get_policy(merchant_id)
        if stored is not None:
            return stored
        return self.defaults.model_copy(deep=True)

    async def update_policy(self, merchant_id: str, update: PolicyUpdate) -> RiskPolicy:
        """
        Apply a partial update and persist the result.

        Raises:
            PolicyValidationError: merged policy fails validation; nothing is written
        """
        now = self.clock()
        stored = await self.store.get_policy(merchant_id)
        base = stored if stored is not None else self.defaults.model_copy(deep=True)

        try:
            merged = update.apply_to(base)
        except ValidationError as e:
            raise PolicyValidationError(str(e)) from e

        validate_policy(merged)

        merged = merged.model_copy(update={
            "created_at": base.created_at if stored is not None else now,
            "updated_at": now,
        })
        saved = await self.store.put_policy(merchant_id, merged)

        logger.info(
            "%s policy for merchant %s (approve >= %d, decline <= %d)",
            "Updated" if stored is not None else "Created",
            merchant_id,
            saved.auto_approve_threshold,
            saved.auto_decline_threshold,
        )
        return saved
