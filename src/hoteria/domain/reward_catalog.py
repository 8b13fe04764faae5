"""Reward catalog - admin management of the rewards points can buy.

Each reward hands out the code of an existing voucher-type discount; the
discount carries the terms, the reward only the tier and the price.
"""

from hoteria.domain.errors import (
    DuplicateRewardCodeError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from hoteria.domain.membership import normalize_tier
from hoteria.infra.db import txn
from hoteria.infra.repositories.discounts_repository import find_voucher_by_code
from hoteria.infra.repositories.loyalty_repository import (
    delete_reward as remove_reward,
    get_reward,
    insert_reward,
    list_rewards,
    reward_code_taken,
    update_reward as store_reward,
)
from hoteria.observability.logging import get_logger

logger = get_logger(__name__)

EDITABLE_FIELDS = ("name", "description", "membership_level", "points_required", "voucher_code")


def _require_admin(actor_role: str) -> None:
    if actor_role != "admin":
        raise ForbiddenError("Only admins can manage rewards")


def validate_reward(reward: dict) -> dict:
    """Check a reward definition and return its normalized copy.

    Raises:
        ValidationError: On any malformed field.
    """
    data = {field: reward.get(field) for field in EDITABLE_FIELDS}

    data["name"] = (data["name"] or "").strip()
    if not data["name"]:
        raise ValidationError("Reward name is required")

    try:
        data["membership_level"] = normalize_tier(data["membership_level"] or "")
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc

    if data["points_required"] is None or data["points_required"] < 0:
        raise ValidationError("points_required must not be negative")

    data["voucher_code"] = (data["voucher_code"] or "").strip()
    if not data["voucher_code"]:
        raise ValidationError("voucher_code is required")

    return data


def _check_voucher(cur, data: dict, *, exclude_id: str | None = None) -> None:
    if find_voucher_by_code(cur, code=data["voucher_code"]) is None:
        raise NotFoundError(f"Voucher {data['voucher_code']} not found")
    if reward_code_taken(cur, voucher_code=data["voucher_code"], exclude_id=exclude_id):
        raise DuplicateRewardCodeError(
            f"Voucher {data['voucher_code']} is already handed out by another reward"
        )


def create_reward(reward: dict, *, actor_role: str) -> dict:
    """Add a reward to the catalog (admin only).

    Raises:
        ForbiddenError: If the actor is not an admin.
        ValidationError: If the reward is malformed.
        NotFoundError: If no live voucher discount has the code.
        DuplicateRewardCodeError: If another reward uses the code.
    """
    _require_admin(actor_role)
    data = validate_reward(reward)

    with txn() as cur:
        _check_voucher(cur, data)
        reward_id = insert_reward(cur, **data)

    logger.info(
        "reward created",
        extra={
            "extra_fields": {
                "reward_id": reward_id,
                "membership_level": data["membership_level"],
            }
        },
    )
    return {"status": "created", "id": reward_id, **data}


def update_reward(reward_id: str, changes: dict, *, actor_role: str) -> dict:
    """Change some fields of a reward (admin only).

    Fields absent from changes keep their stored value.

    Raises:
        ForbiddenError, ValidationError, NotFoundError, DuplicateRewardCodeError.
    """
    _require_admin(actor_role)

    with txn() as cur:
        current = get_reward(cur, reward_id=reward_id)
        merged = {**current, **{k: v for k, v in changes.items() if k in EDITABLE_FIELDS}}
        data = validate_reward(merged)
        _check_voucher(cur, data, exclude_id=reward_id)
        store_reward(cur, reward_id=reward_id, reward=data)

    logger.info("reward updated", extra={"extra_fields": {"reward_id": reward_id}})
    return {"status": "updated", "id": reward_id, **data}


def delete_reward(reward_id: str, *, actor_role: str) -> dict:
    """Remove a reward (admin only). Vouchers already issued stay valid.

    Raises:
        ForbiddenError: If the actor is not an admin.
        NotFoundError: If the reward does not exist.
    """
    _require_admin(actor_role)

    with txn() as cur:
        if not remove_reward(cur, reward_id=reward_id):
            raise NotFoundError(f"Reward {reward_id} not found")

    logger.info("reward deleted", extra={"extra_fields": {"reward_id": reward_id}})
    return {"status": "deleted", "id": reward_id}


def list_catalog(*, actor_role: str) -> list[dict]:
    """Every reward, all tiers (admin only)."""
    _require_admin(actor_role)
    with txn() as cur:
        return list_rewards(cur)
