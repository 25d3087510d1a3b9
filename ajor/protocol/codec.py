"""Pure encoding functions for cooperative contract messages. No I/O.

Every message is a one-of envelope ``{action: {snake_case fields}}``.
Amounts (``Uint128``) and fractions (``Decimal``) cross the wire as decimal
strings; binary floats are rejected rather than coerced.
"""
from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from decimal import Decimal, InvalidOperation
from typing import Any

from ..errors import MalformedMessageError, ValidationError

UINT128_MAX = 2**128 - 1
DECIMAL_PLACES = 18

EXECUTE_ACTIONS = frozenset(
    {
        "update_token_price",
        "create_cooperative",
        "fund_cooperative",
        "borrow",
        "repay",
        "propose",
        "vote",
        "withdraw_weight",
        "withdraw_contribution_and_reward",
        "execute_proposal",
    }
)

# Sent to a CW20 token contract, not to the cooperative contract.
TOKEN_EXECUTE_ACTIONS = frozenset({"increase_allowance"})

QUERY_ACTIONS = frozenset(
    {
        "get_cooperative",
        "get_member_info",
        "member_contribution_and_share",
        "list_cooperatives",
        "get_proposal",
        "get_whitelisted_tokens",
        "get_token_id",
    }
)

TOKEN_QUERY_ACTIONS = frozenset({"allowance"})

_UINT_RE = re.compile(r"^[0-9]+$")


# ---------------------------------------------------------------------------
# Numeric coercion
# ---------------------------------------------------------------------------


def to_uint128(value: Any, field: str = "amount") -> int:
    """Return *value* as an int in the Uint128 range.

    Accepts ``int`` or a string of decimal digits. ``float`` and ``bool``
    are rejected since they cannot be trusted to carry an exact amount.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{field} must be an int or digit string, got {type(value).__name__}")
    if isinstance(value, int):
        number = value
    elif isinstance(value, str) and _UINT_RE.match(value.strip()):
        number = int(value.strip())
    else:
        raise ValidationError(f"{field} is not a valid unsigned integer: {value!r}")
    if number < 0 or number > UINT128_MAX:
        raise ValidationError(f"{field} out of Uint128 range: {number}")
    return number


def uint128(value: Any, field: str = "amount") -> str:
    """Encode an amount as the decimal string the contract expects."""
    return str(to_uint128(value, field))


def to_decimal(value: Any, field: str = "value") -> Decimal:
    """Return *value* as a non-negative finite ``Decimal``.

    Accepts ``Decimal``, ``int`` or a decimal string with at most 18
    fractional digits (the contract's ``Decimal`` precision).
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{field} must be a Decimal, int or string, got {type(value).__name__}")
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, int):
        number = Decimal(value)
    elif isinstance(value, str):
        try:
            number = Decimal(value.strip())
        except InvalidOperation:
            raise ValidationError(f"{field} is not a decimal: {value!r}") from None
    else:
        raise ValidationError(f"{field} is not a decimal: {value!r}")
    if not number.is_finite() or number < 0:
        raise ValidationError(f"{field} must be a finite non-negative decimal: {value!r}")
    if -number.as_tuple().exponent > DECIMAL_PLACES:
        raise ValidationError(f"{field} has more than {DECIMAL_PLACES} decimal places")
    return number


def decimal_str(value: Any, field: str = "value") -> str:
    """Encode a fraction as a plain decimal string (no exponent)."""
    number = to_decimal(value, field)
    text = format(number, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def to_u64(value: Any, field: str = "value") -> int:
    """Return *value* as a non-negative int for ``u64`` fields (ids, times)."""
    if isinstance(value, str) and _UINT_RE.match(value):
        value = int(value)
    elif isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an unsigned integer: {value!r}")
    if value < 0 or value >= 2**64:
        raise ValidationError(f"{field} out of u64 range: {value}")
    return value


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


def envelope(action: str, body: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """Wrap *body* under its single action key."""
    return {action: dict(body or {})}


def decode_message(
    msg: Any, allowed: Iterable[str] | None = None
) -> tuple[str, dict[str, Any]]:
    """Split a one-of message into ``(action, body)``.

    Raises:
        MalformedMessageError: no action, several actions, an action not in
            *allowed*, or a body that is not an object.
    """
    if not isinstance(msg, Mapping):
        raise MalformedMessageError(f"message must be an object, got {type(msg).__name__}")
    if not msg:
        raise MalformedMessageError("message has no action")
    if len(msg) > 1:
        raise MalformedMessageError(
            f"message has several actions: {', '.join(sorted(msg))}"
        )
    ((action, body),) = msg.items()
    if allowed is not None and action not in set(allowed):
        raise MalformedMessageError(f"unknown action '{action}'")
    if not isinstance(body, Mapping):
        raise MalformedMessageError(f"body of '{action}' must be an object")
    return action, dict(body)


# ---------------------------------------------------------------------------
# Execute messages (cooperative contract)
# ---------------------------------------------------------------------------


def update_token_price_msg(token_addr: str, usd_price: Any) -> dict[str, Any]:
    return envelope(
        "update_token_price",
        {"token_addr": _address(token_addr, "token_addr"), "usd_price": decimal_str(usd_price, "usd_price")},
    )


def create_cooperative_msg(
    name: str,
    risk_profile: Mapping[str, Any],
    initial_members: list[Mapping[str, Any]],
    initial_whitelisted_tokens: list[Mapping[str, Any]],
) -> dict[str, Any]:
    """Build ``create_cooperative`` from already-encoded entity dicts."""
    return envelope(
        "create_cooperative",
        {
            "name": _name(name),
            "risk_profile": dict(risk_profile),
            "initial_members": [dict(m) for m in initial_members],
            "initial_whitelisted_tokens": [dict(t) for t in initial_whitelisted_tokens],
        },
    )


def fund_cooperative_msg(
    cooperative_name: str, token: str, is_native: bool, amount: Any
) -> dict[str, Any]:
    return envelope(
        "fund_cooperative",
        {
            "cooperative_name": _name(cooperative_name),
            "token": _address(token, "token"),
            "is_native": bool(is_native),
            "amount": uint128(amount),
        },
    )


def borrow_msg(
    cooperative_name: str,
    tokens_in: list[str],
    amount_in: list[Any],
    token_out: str,
    min_amount_out: Any,
) -> dict[str, Any]:
    """Build ``borrow``; collateral tokens and amounts are matched by position."""
    tokens_in = list(tokens_in)
    amount_in = list(amount_in)
    if len(tokens_in) != len(amount_in):
        raise ValidationError(
            f"tokens_in has {len(tokens_in)} entries but amount_in has {len(amount_in)}"
        )
    if not tokens_in:
        raise ValidationError("borrow needs at least one collateral token")
    return envelope(
        "borrow",
        {
            "cooperative_name": _name(cooperative_name),
            "tokens_in": [_address(t, "tokens_in") for t in tokens_in],
            "amount_in": [uint128(a, "amount_in") for a in amount_in],
            "token_out": _address(token_out, "token_out"),
            "min_amount_out": uint128(min_amount_out, "min_amount_out"),
        },
    )


def repay_msg(cooperative_name: str, token: str) -> dict[str, Any]:
    return envelope(
        "repay",
        {"cooperative_name": _name(cooperative_name), "token": _address(token, "token")},
    )


def propose_msg(cooperative_name: str, proposal: Mapping[str, Any]) -> dict[str, Any]:
    return envelope(
        "propose",
        {"cooperative_name": _name(cooperative_name), "proposal": dict(proposal)},
    )


def vote_msg(
    cooperative_name: str, proposal_id: int, weight: Any, aye: bool
) -> dict[str, Any]:
    return envelope(
        "vote",
        {
            "cooperative_name": _name(cooperative_name),
            "proposal_id": to_u64(proposal_id, "proposal_id"),
            "weight": uint128(weight, "weight"),
            "aye": bool(aye),
        },
    )


def withdraw_weight_msg(cooperative_name: str, proposal_id: int) -> dict[str, Any]:
    return envelope(
        "withdraw_weight",
        {
            "cooperative_name": _name(cooperative_name),
            "proposal_id": to_u64(proposal_id, "proposal_id"),
        },
    )


def withdraw_contribution_and_reward_msg(
    cooperative_name: str, token: str
) -> dict[str, Any]:
    return envelope(
        "withdraw_contribution_and_reward",
        {"cooperative_name": _name(cooperative_name), "token": _address(token, "token")},
    )


def execute_proposal_msg(cooperative_name: str, proposal_id: int) -> dict[str, Any]:
    return envelope(
        "execute_proposal",
        {
            "cooperative_name": _name(cooperative_name),
            "proposal_id": to_u64(proposal_id, "proposal_id"),
        },
    )


def increase_allowance_msg(spender: str, amount: Any) -> dict[str, Any]:
    """CW20 ``increase_allowance``; sent to the token contract."""
    return envelope(
        "increase_allowance",
        {"spender": _address(spender, "spender"), "amount": uint128(amount)},
    )


# ---------------------------------------------------------------------------
# Query messages
# ---------------------------------------------------------------------------


def get_cooperative_query(cooperative_name: str) -> dict[str, Any]:
    return envelope("get_cooperative", {"cooperative_name": _name(cooperative_name)})


def get_member_info_query(cooperative_name: str, member: str) -> dict[str, Any]:
    return envelope(
        "get_member_info",
        {"cooperative_name": _name(cooperative_name), "member": _address(member, "member")},
    )


def member_contribution_and_share_query(
    cooperative_name: str, member_address: str
) -> dict[str, Any]:
    return envelope(
        "member_contribution_and_share",
        {
            "cooperative_name": _name(cooperative_name),
            "member_address": _address(member_address, "member_address"),
        },
    )


def list_cooperatives_query(
    min: str | None = None, max: str | None = None
) -> dict[str, Any]:
    """Only the bounds that are given are sent."""
    body: dict[str, Any] = {}
    if min is not None:
        body["min"] = min
    if max is not None:
        body["max"] = max
    return envelope("list_cooperatives", body)


def get_proposal_query(proposal_id: int) -> dict[str, Any]:
    return envelope("get_proposal", {"proposal_id": to_u64(proposal_id, "proposal_id")})


def get_whitelisted_tokens_query(cooperative_name: str) -> dict[str, Any]:
    return envelope(
        "get_whitelisted_tokens", {"cooperative_name": _name(cooperative_name)}
    )


def get_token_id_query(token: str) -> dict[str, Any]:
    return envelope("get_token_id", {"token": _address(token, "token")})


def allowance_query(owner: str, spender: str) -> dict[str, Any]:
    """CW20 ``allowance``; sent to the token contract."""
    return envelope(
        "allowance",
        {"owner": _address(owner, "owner"), "spender": _address(spender, "spender")},
    )


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def _name(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"cooperative name must be a non-empty string: {value!r}")
    return value


def _address(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} must be a non-empty string: {value!r}")
    return value
