"""Decoders for cooperative contract query responses. No I/O."""
from __future__ import annotations

from typing import Any

from ..errors import MalformedMessageError
from ..models import (
    Cooperative,
    Member,
    MemberContributionAndShare,
    Proposal,
    WhitelistedToken,
)
from .codec import to_u64, to_uint128


def _field(response: Any, key: str, query: str) -> Any:
    if not isinstance(response, dict) or key not in response:
        raise MalformedMessageError(f"{query} response is missing '{key}'")
    return response[key]


def decode_cooperative(response: dict[str, Any]) -> Cooperative:
    """``get_cooperative``; the contract names the field ``corporative``."""
    if isinstance(response, dict) and "cooperative" in response:
        return Cooperative.from_wire(response["cooperative"])
    return Cooperative.from_wire(_field(response, "corporative", "get_cooperative"))


def decode_member_info(response: dict[str, Any]) -> Member | None:
    """``get_member_info``; None when the address is not a member."""
    member = Member.from_wire(_field(response, "info", "get_member_info"))
    if member.is_placeholder:
        return None
    return member


def decode_member_contribution_and_share(
    response: dict[str, Any],
) -> MemberContributionAndShare:
    return MemberContributionAndShare.from_wire(response)


def decode_cooperative_list(response: dict[str, Any]) -> list[str]:
    names = _field(response, "cooperatives", "list_cooperatives")
    if not isinstance(names, list):
        raise MalformedMessageError("list_cooperatives 'cooperatives' must be a list")
    return [str(n) for n in names]


def decode_proposal(response: dict[str, Any]) -> Proposal:
    return Proposal.from_wire(_field(response, "proposal", "get_proposal"))


def decode_whitelisted_tokens(response: dict[str, Any]) -> list[WhitelistedToken]:
    tokens = _field(response, "tokens", "get_whitelisted_tokens")
    return [WhitelistedToken.from_wire(t) for t in tokens or []]


def decode_token_id(response: dict[str, Any]) -> int:
    return to_u64(_field(response, "token_id", "get_token_id"), "token_id")


def decode_allowance(response: dict[str, Any]) -> int:
    """CW20 ``allowance`` → remaining allowance amount."""
    return to_uint128(_field(response, "allowance", "allowance"), "allowance")
