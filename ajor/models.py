"""Data models, all frozen (immutable).

Local copies of contract state are read snapshots. Every entity validates
itself on construction and converts to and from the contract's JSON shapes.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any

from .errors import InvalidEntityError, MalformedMessageError, ValidationError
from .protocol.codec import decimal_str, to_decimal, to_u64, to_uint128, uint128

MAX_INITIAL_MEMBERS = 20
MAX_WHITELISTED_TOKENS = 5

# Address the contract returns for a member that does not exist.
PLACEHOLDER_ADDRESS = "0"


def validate(entity: Any) -> str | None:
    """Return why *entity* is structurally invalid, or None when it is valid."""
    try:
        entity.validate()
    except InvalidEntityError as e:
        return e.reason
    except ValidationError as e:
        return e.message
    return None


def _require(data: dict[str, Any], key: str, entity: str) -> Any:
    try:
        return data[key]
    except (KeyError, TypeError):
        raise MalformedMessageError(f"{entity} is missing '{key}'") from None


def _fraction(value: Decimal, name: str, allow_above_one: bool = False) -> None:
    if value <= 0:
        raise InvalidEntityError(f"{name} must be greater than 0, got {value}")
    if not allow_above_one and value > 1:
        raise InvalidEntityError(f"{name} must be at most 1, got {value}")


def _pairs_to_wire(pairs: tuple[tuple[int, int], ...]) -> list[list[Any]]:
    return [[token_id, str(amount)] for token_id, amount in pairs]


def _pairs_from_wire(raw: Any, name: str) -> tuple[tuple[int, int], ...]:
    try:
        return tuple((to_u64(p[0], name), to_uint128(p[1], name)) for p in raw or [])
    except (IndexError, TypeError):
        raise MalformedMessageError(f"{name} must be a list of [token_id, amount]") from None


def _ledger(pairs: Any) -> tuple[tuple[int, int], ...]:
    return tuple((to_u64(k, "token_id"), to_uint128(v)) for k, v in pairs)


# ---------------------------------------------------------------------------
# Funds and transaction results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Coin:
    """One entry of the funds attached to an execute call."""

    denom: str
    amount: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_uint128(self.amount))
        self.validate()

    def validate(self) -> None:
        if not self.denom:
            raise InvalidEntityError("coin denom must not be empty")

    def to_wire(self) -> dict[str, str]:
        return {"denom": self.denom, "amount": str(self.amount)}


@dataclass(frozen=True)
class TxResult:
    """Outcome of a confirmed execute call."""

    transaction_hash: str
    events: tuple[dict[str, Any], ...] = ()
    height: int = 0
    gas_used: int = 0

    def attribute(self, key: str, event_type: str = "wasm") -> str | None:
        """Return the first attribute *key* emitted under *event_type*."""
        for event in self.events:
            if event.get("type") != event_type:
                continue
            for attr in event.get("attributes", []):
                if attr.get("key") == key:
                    return attr.get("value")
        return None


# ---------------------------------------------------------------------------
# Cooperative entities
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RiskProfile:
    """Interest rate and collateralization ratio of a cooperative."""

    interest_rate: Decimal
    collateralization_ratio: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "interest_rate", to_decimal(self.interest_rate, "interest_rate"))
        object.__setattr__(
            self,
            "collateralization_ratio",
            to_decimal(self.collateralization_ratio, "collateralization_ratio"),
        )
        self.validate()

    def validate(self) -> None:
        _fraction(self.interest_rate, "interest_rate")
        # Over-collateralization (e.g. 1.5) is allowed.
        _fraction(self.collateralization_ratio, "collateralization_ratio", allow_above_one=True)

    def to_wire(self) -> dict[str, str]:
        return {
            "interest_rate": decimal_str(self.interest_rate),
            "collateralization_ratio": decimal_str(self.collateralization_ratio),
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> RiskProfile:
        return cls(
            interest_rate=_require(data, "interest_rate", "risk_profile"),
            collateralization_ratio=_require(data, "collateralization_ratio", "risk_profile"),
        )


@dataclass(frozen=True)
class WhitelistedToken:
    """A token a cooperative accepts, identified by denom or CW20 address.

    ``usd_price`` is client-side only: it records the last price pushed with
    ``update_token_price`` and is never serialized.
    """

    denom: str
    is_native: bool
    max_loan_ratio: Decimal
    contract_addr: str | None = None
    usd_price: Decimal | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "max_loan_ratio", to_decimal(self.max_loan_ratio, "max_loan_ratio"))
        if self.usd_price is not None:
            object.__setattr__(self, "usd_price", to_decimal(self.usd_price, "usd_price"))
        self.validate()

    def validate(self) -> None:
        if not self.denom:
            raise InvalidEntityError("whitelisted token denom must not be empty")
        if self.is_native and self.contract_addr:
            raise InvalidEntityError(
                f"native token '{self.denom}' must not carry a contract address"
            )
        if not self.is_native and not self.contract_addr:
            raise InvalidEntityError(
                f"non-native token '{self.denom}' requires a contract address"
            )
        _fraction(self.max_loan_ratio, "max_loan_ratio")

    @property
    def identifier(self) -> str:
        """Denom for native tokens, contract address for CW20 tokens."""
        if self.is_native:
            return self.denom
        return self.contract_addr or ""

    def with_price(self, usd_price: Any) -> WhitelistedToken:
        return replace(self, usd_price=to_decimal(usd_price, "usd_price"))

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {"denom": self.denom}
        if self.contract_addr:
            wire["contract_addr"] = self.contract_addr
        wire["is_native"] = self.is_native
        wire["max_loan_ratio"] = decimal_str(self.max_loan_ratio)
        return wire

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> WhitelistedToken:
        return cls(
            denom=_require(data, "denom", "whitelisted_token"),
            contract_addr=data.get("contract_addr") or None,
            is_native=bool(_require(data, "is_native", "whitelisted_token")),
            max_loan_ratio=_require(data, "max_loan_ratio", "whitelisted_token"),
        )


class LoanStatus(str, enum.Enum):
    ACTIVE = "Active"
    REPAID = "Repaid"
    DEFAULTED = "Defaulted"


@dataclass(frozen=True)
class Loan:
    """An entry of a member's active-loan list."""

    id: int
    amount: int
    token: str
    collaterals: tuple[str, ...]
    collaterals_amount: tuple[int, ...]
    interest_rate: Decimal
    status: LoanStatus = LoanStatus.ACTIVE

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_uint128(self.amount))
        object.__setattr__(self, "collaterals", tuple(self.collaterals))
        object.__setattr__(
            self,
            "collaterals_amount",
            tuple(to_uint128(a, "collaterals_amount") for a in self.collaterals_amount),
        )
        object.__setattr__(self, "interest_rate", to_decimal(self.interest_rate, "interest_rate"))
        object.__setattr__(self, "status", LoanStatus(self.status))
        self.validate()

    def validate(self) -> None:
        if len(self.collaterals) != len(self.collaterals_amount):
            raise InvalidEntityError(
                f"loan {self.id} has {len(self.collaterals)} collaterals "
                f"but {len(self.collaterals_amount)} collateral amounts"
            )

    @property
    def is_active(self) -> bool:
        return self.status is LoanStatus.ACTIVE

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "amount": str(self.amount),
            "token": self.token,
            "collaterals": list(self.collaterals),
            "collaterals_amount": [str(a) for a in self.collaterals_amount],
            "interest_rate": decimal_str(self.interest_rate),
            "status": self.status.value,
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> Loan:
        try:
            status = LoanStatus(_require(data, "status", "loan"))
        except ValueError:
            raise MalformedMessageError(f"unknown loan status: {data.get('status')!r}") from None
        return cls(
            id=to_u64(_require(data, "id", "loan"), "id"),
            amount=to_uint128(_require(data, "amount", "loan")),
            token=_require(data, "token", "loan"),
            collaterals=tuple(_require(data, "collaterals", "loan")),
            collaterals_amount=tuple(_require(data, "collaterals_amount", "loan")),
            interest_rate=_require(data, "interest_rate", "loan"),
            status=status,
        )


@dataclass(frozen=True)
class Member:
    """A cooperative member; contribution and share are keyed by token-id."""

    address: str
    contribution: tuple[tuple[int, int], ...] = ()
    share: tuple[tuple[int, int], ...] = ()
    joined_at: int = 0
    reputation_score: Decimal = Decimal("0")
    active_loans: tuple[Loan, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "contribution", _ledger(self.contribution))
        object.__setattr__(self, "share", _ledger(self.share))
        object.__setattr__(self, "active_loans", tuple(self.active_loans))
        object.__setattr__(
            self, "reputation_score", to_decimal(self.reputation_score, "reputation_score")
        )
        self.validate()

    def validate(self) -> None:
        if not self.address:
            raise InvalidEntityError("member address must not be empty")
        to_u64(self.joined_at, "joined_at")

    @property
    def is_placeholder(self) -> bool:
        return self.address == PLACEHOLDER_ADDRESS

    def contributions(self) -> dict[int, int]:
        """Contribution per token-id; later entries win like the contract's ledger."""
        return dict(self.contribution)

    def shares(self) -> dict[int, int]:
        return dict(self.share)

    def token_ids(self) -> set[int]:
        return {k for k, _ in self.contribution} | {k for k, _ in self.share}

    def active(self) -> list[Loan]:
        return [loan for loan in self.active_loans if loan.is_active]

    def to_wire(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "contribution": _pairs_to_wire(self.contribution),
            "share": _pairs_to_wire(self.share),
            "joined_at": self.joined_at,
            "reputation_score": decimal_str(self.reputation_score),
            "active_loans": [loan.to_wire() for loan in self.active_loans],
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> Member:
        return cls(
            address=_require(data, "address", "member"),
            contribution=_pairs_from_wire(data.get("contribution"), "contribution"),
            share=_pairs_from_wire(data.get("share"), "share"),
            joined_at=to_u64(data.get("joined_at", 0), "joined_at"),
            reputation_score=data.get("reputation_score", "0"),
            active_loans=tuple(Loan.from_wire(raw) for raw in data.get("active_loans") or []),
        )


@dataclass(frozen=True)
class Cooperative:
    """A named pool of members, collateral and whitelisted tokens."""

    name: str
    risk_profile: RiskProfile
    members: tuple[Member, ...] = ()
    whitelisted_tokens: tuple[WhitelistedToken, ...] = ()
    total_funds: tuple[tuple[int, int], ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "members", tuple(self.members))
        object.__setattr__(self, "whitelisted_tokens", tuple(self.whitelisted_tokens))
        object.__setattr__(self, "total_funds", _ledger(self.total_funds))
        self.validate()

    def validate(self) -> None:
        if not self.name or not self.name.strip():
            raise InvalidEntityError("cooperative name must not be empty")
        # Ledger keys index into the whitelist.
        keyspace = range(len(self.whitelisted_tokens))
        for member in self.members:
            unknown = sorted(k for k in member.token_ids() if k not in keyspace)
            if unknown:
                raise InvalidEntityError(
                    f"member {member.address} holds entries for non-whitelisted "
                    f"token ids {unknown} in '{self.name}'"
                )

    def member(self, address: str) -> Member | None:
        for m in self.members:
            if m.address == address:
                return m
        return None

    def token(self, identifier: str) -> WhitelistedToken | None:
        """Find a whitelisted token by denom or contract address."""
        for t in self.whitelisted_tokens:
            if identifier in (t.denom, t.contract_addr):
                return t
        return None

    def funds(self) -> dict[int, int]:
        return dict(self.total_funds)

    def to_wire(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "total_funds": _pairs_to_wire(self.total_funds),
            "members": [m.to_wire() for m in self.members],
            "risk_profile": self.risk_profile.to_wire(),
            "whitelisted_tokens": [t.to_wire() for t in self.whitelisted_tokens],
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> Cooperative:
        return cls(
            name=_require(data, "name", "cooperative"),
            risk_profile=RiskProfile.from_wire(_require(data, "risk_profile", "cooperative")),
            members=tuple(Member.from_wire(m) for m in data.get("members") or []),
            whitelisted_tokens=tuple(
                WhitelistedToken.from_wire(t) for t in data.get("whitelisted_tokens") or []
            ),
            total_funds=_pairs_from_wire(data.get("total_funds"), "total_funds"),
        )


# ---------------------------------------------------------------------------
# Governance entities
# ---------------------------------------------------------------------------


class ProposalType(str, enum.Enum):
    WHITELIST_TOKEN = "WhitelistToken"
    ADD_MEMBER = "AddMember"
    ADD_LP = "AddLP"
    APPROVE_LOAN = "ApproveLoan"
    LIQUIDATE_COLLATERAL = "LiquidateCollateral"


class ProposalOutcome(str, enum.Enum):
    PASSED = "Passed"
    REJECTED = "Rejected"


class ProposalState(str, enum.Enum):
    OPEN = "Open"
    EXECUTABLE = "Executable"
    EXECUTED = "Executed"


@dataclass(frozen=True)
class ProposalData:
    """Type-specific proposal payload; unused fields stay None."""

    denom: str | None = None
    token_addr: str | None = None
    is_native: bool | None = None
    max_loan_ratio: Decimal | None = None
    new_member_addr: str | None = None

    def __post_init__(self) -> None:
        if self.max_loan_ratio is not None:
            object.__setattr__(
                self, "max_loan_ratio", to_decimal(self.max_loan_ratio, "max_loan_ratio")
            )

    def validate_for(self, proposal_type: ProposalType) -> None:
        if proposal_type is ProposalType.WHITELIST_TOKEN:
            if not self.denom:
                raise InvalidEntityError("WhitelistToken proposal requires a denom")
            if self.is_native is False and not self.token_addr:
                raise InvalidEntityError(
                    "WhitelistToken proposal for a non-native token requires token_addr"
                )
            if self.is_native and self.token_addr:
                raise InvalidEntityError(
                    "WhitelistToken proposal for a native token must not carry token_addr"
                )
            if self.max_loan_ratio is not None:
                _fraction(self.max_loan_ratio, "max_loan_ratio")
        elif proposal_type is ProposalType.ADD_MEMBER:
            if not self.new_member_addr:
                raise InvalidEntityError("AddMember proposal requires new_member_addr")

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {}
        if self.denom is not None:
            wire["denom"] = self.denom
        if self.token_addr is not None:
            wire["token_addr"] = self.token_addr
        if self.is_native is not None:
            wire["is_native"] = self.is_native
        if self.max_loan_ratio is not None:
            wire["max_loan_ratio"] = decimal_str(self.max_loan_ratio)
        if self.new_member_addr is not None:
            wire["new_member_addr"] = self.new_member_addr
        return wire

    @classmethod
    def from_wire(cls, data: dict[str, Any] | None) -> ProposalData:
        data = data or {}
        return cls(
            denom=data.get("denom"),
            token_addr=data.get("token_addr"),
            is_native=data.get("is_native"),
            max_loan_ratio=data.get("max_loan_ratio"),
            new_member_addr=data.get("new_member_addr"),
        )


@dataclass(frozen=True)
class Vote:
    """A recorded vote; ``conviction`` is the bonded weight."""

    voter: str
    conviction: int
    voted_at: int = 0

    def to_wire(self) -> dict[str, Any]:
        return {"voter": self.voter, "conviction": str(self.conviction), "voted_at": self.voted_at}

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> Vote:
        return cls(
            voter=_require(data, "voter", "vote"),
            conviction=to_uint128(data.get("conviction", 0), "conviction"),
            voted_at=to_u64(data.get("voted_at", 0), "voted_at"),
        )


@dataclass(frozen=True)
class Proposal:
    """A governance record. ``id`` is assigned by the contract; the value
    sent with ``propose`` is advisory only."""

    description: str
    proposal_type: ProposalType
    end_time: int
    data: ProposalData = field(default_factory=ProposalData)
    id: int = 0
    votes: tuple[Vote, ...] = ()
    aye_count: int = 0
    nay_count: int = 0
    aye_weights: int = 0
    nay_weights: int = 0
    quorum: Decimal | None = None
    outcome: ProposalOutcome | None = None
    executed: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "proposal_type", ProposalType(self.proposal_type))
        object.__setattr__(self, "votes", tuple(self.votes))
        if self.quorum is not None:
            object.__setattr__(self, "quorum", to_decimal(self.quorum, "quorum"))
        if self.outcome is not None:
            object.__setattr__(self, "outcome", ProposalOutcome(self.outcome))
        self.validate()

    def validate(self) -> None:
        if not self.description:
            raise InvalidEntityError("proposal description must not be empty")
        to_u64(self.end_time, "end_time")
        self.data.validate_for(self.proposal_type)

    def state(self, now: float) -> ProposalState:
        if self.executed:
            return ProposalState.EXECUTED
        if now >= self.end_time or self.outcome is not None:
            return ProposalState.EXECUTABLE
        return ProposalState.OPEN

    def accepts_votes(self, now: float) -> bool:
        return self.state(now) is ProposalState.OPEN

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {
            "id": self.id,
            "description": self.description,
            "data": self.data.to_wire(),
            "votes": [v.to_wire() for v in self.votes],
            "aye_count": self.aye_count,
            "nay_count": self.nay_count,
            "aye_weights": self.aye_weights,
            "nay_weights": self.nay_weights,
            "end_time": self.end_time,
            "proposal_type": self.proposal_type.value,
            "executed": self.executed,
        }
        if self.quorum is not None:
            wire["quorum"] = decimal_str(self.quorum)
        if self.outcome is not None:
            wire["outcome"] = self.outcome.value
        return wire

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> Proposal:
        try:
            proposal_type = ProposalType(_require(data, "proposal_type", "proposal"))
            outcome = data.get("outcome")
            outcome = ProposalOutcome(outcome) if outcome is not None else None
        except ValueError as e:
            raise MalformedMessageError(f"proposal: {e}") from None
        return cls(
            id=to_u64(data.get("id", 0), "id"),
            description=_require(data, "description", "proposal"),
            data=ProposalData.from_wire(data.get("data")),
            votes=tuple(Vote.from_wire(v) for v in data.get("votes") or []),
            aye_count=to_u64(data.get("aye_count", 0), "aye_count"),
            nay_count=to_u64(data.get("nay_count", 0), "nay_count"),
            aye_weights=to_u64(data.get("aye_weights", 0), "aye_weights"),
            nay_weights=to_u64(data.get("nay_weights", 0), "nay_weights"),
            end_time=to_u64(_require(data, "end_time", "proposal"), "end_time"),
            quorum=data.get("quorum"),
            proposal_type=proposal_type,
            outcome=outcome,
            executed=bool(data.get("executed", False)),
        )


# ---------------------------------------------------------------------------
# member_contribution_and_share response
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TokenAmount:
    token_id: int
    amount: int
    symbol: str | None = None
    name: str | None = None

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> TokenAmount:
        return cls(
            token_id=to_u64(_require(data, "token_id", "token_amount"), "token_id"),
            amount=to_uint128(_require(data, "amount", "token_amount")),
            symbol=data.get("symbol"),
            name=data.get("name"),
        )


@dataclass(frozen=True)
class TokenInfo:
    token_id: int
    denom: str
    is_native: bool
    contract_addr: str | None = None
    symbol: str | None = None
    name: str | None = None

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> TokenInfo:
        return cls(
            token_id=to_u64(_require(data, "token_id", "token_info"), "token_id"),
            denom=_require(data, "denom", "token_info"),
            is_native=bool(_require(data, "is_native", "token_info")),
            contract_addr=data.get("contract_addr"),
            symbol=data.get("symbol"),
            name=data.get("name"),
        )


@dataclass(frozen=True)
class MemberContributionAndShare:
    member_address: str
    cooperative_name: str
    contributions: tuple[TokenAmount, ...] = ()
    shares: tuple[TokenAmount, ...] = ()
    loans: tuple[Loan, ...] = ()
    token_info: tuple[TokenInfo, ...] = ()

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> MemberContributionAndShare:
        entity = "member_contribution_and_share"
        return cls(
            member_address=_require(data, "member_address", entity),
            cooperative_name=_require(data, "cooperative_name", entity),
            contributions=tuple(TokenAmount.from_wire(t) for t in data.get("contributions") or []),
            shares=tuple(TokenAmount.from_wire(t) for t in data.get("shares") or []),
            loans=tuple(Loan.from_wire(loan) for loan in data.get("loans") or []),
            token_info=tuple(TokenInfo.from_wire(t) for t in data.get("token_info") or []),
        )


def normalize_cooperative_name(name: str) -> str:
    """The contract keys cooperatives by trimmed, lower-cased name."""
    return name.strip().lower()
