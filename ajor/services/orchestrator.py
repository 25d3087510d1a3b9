"""Transaction orchestration for the cooperative contract.

Decides, per operation, how funds travel with the call:

* native tokens are attached as transaction funds of the primary call;
* CW20 tokens need an ``increase_allowance`` on the token contract naming
  the cooperative contract as spender, after which the primary call is sent
  with no funds. A failed allowance aborts the sequence.

Each execute is a single blocking call; later steps only start once the
earlier ones are confirmed.
"""
from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Union

from ..config import AppConfig, ContractConfig
from ..errors import AjorError, NotConnectedError, PreconditionError, TransportError, ValidationError
from ..interfaces.chain import ChainClient
from ..models import (
    MAX_INITIAL_MEMBERS,
    MAX_WHITELISTED_TOKENS,
    Coin,
    Cooperative,
    Member,
    MemberContributionAndShare,
    Proposal,
    RiskProfile,
    TxResult,
    WhitelistedToken,
)
from ..protocol import codec, responses

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Session state
# ---------------------------------------------------------------------------


class Disconnected:
    """No account bound; only queries are possible."""

    def __repr__(self) -> str:
        return "Disconnected()"


@dataclass(frozen=True)
class Ready:
    """An account is bound; its address signs every execute call."""

    address: str


DISCONNECTED = Disconnected()

SessionState = Union[Disconnected, Ready]


@contextmanager
def tagged(action: str) -> Iterator[None]:
    """Attach *action* to any client error raised inside the block."""
    try:
        yield
    except AjorError as e:
        if e.action is None:
            e.action = action
        raise


class CooperativeClient:
    """Builds, sequences and submits cooperative contract calls."""

    def __init__(
        self,
        chain: ChainClient,
        contract: ContractConfig,
        fee: str = "auto",
        track_allowances: bool = True,
        query_allowances: bool = False,
    ) -> None:
        if not contract.address:
            raise ValueError("contract address must be configured")
        self._chain = chain
        self._contract = contract
        self._fee = fee
        self._track_allowances = track_allowances
        self._query_allowances = query_allowances
        self._session: SessionState = DISCONNECTED
        # (token contract, spender) -> allowance granted and not held by a call
        self._allowances: dict[tuple[str, str], int] = {}
        # (token contract, spender) -> allowance held by in-flight calls
        self._reserved: dict[tuple[str, str], int] = {}

    @classmethod
    def from_config(
        cls, chain: ChainClient, config: AppConfig, deployment: str | None = None
    ) -> CooperativeClient:
        client = cls(
            chain,
            config.deployment(deployment),
            fee=config.chain.fee,
            track_allowances=config.orchestrator.track_allowances,
            query_allowances=config.orchestrator.query_allowances,
        )
        if config.wallet.address:
            client.connect(config.wallet.address)
        return client

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    @property
    def contract_address(self) -> str:
        return self._contract.address

    @property
    def native_denom(self) -> str:
        return self._contract.native_denom

    @property
    def session(self) -> SessionState:
        return self._session

    def connect(self, address: str) -> Ready:
        """Bind the signing account; the binding is fixed for the session."""
        if not address:
            raise ValidationError("account address must not be empty")
        if isinstance(self._session, Ready):
            if self._session.address != address:
                raise PreconditionError(
                    f"session already bound to {self._session.address}"
                )
            return self._session
        self._session = Ready(address)
        logger.info("Connected with address: %s", address)
        return self._session

    def require_account(self, action: str) -> str:
        if not isinstance(self._session, Ready):
            raise NotConnectedError(action)
        return self._session.address

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def _execute(
        self,
        action: str,
        contract: str,
        msg: dict[str, Any],
        funds: Sequence[Coin] = (),
    ) -> TxResult:
        sender = self.require_account(action)
        logger.info(
            "Executing %s on %s (funds: %s)",
            action,
            contract,
            ", ".join(f"{c.amount}{c.denom}" for c in funds) or "none",
        )
        with tagged(action):
            try:
                result = await self._chain.execute(
                    sender, contract, msg, fee=self._fee, memo="", funds=tuple(funds)
                )
            except AjorError as e:
                logger.error("%s failed: %s", action, e.message)
                raise
            except Exception as e:
                logger.error("%s failed: %s", action, e)
                raise TransportError(str(e), action=action) from e
        logger.info("%s confirmed in tx %s", action, result.transaction_hash)
        return result

    async def _query(self, action: str, contract: str, msg: dict[str, Any]) -> dict[str, Any]:
        with tagged(action):
            try:
                return await self._chain.query(contract, msg)
            except AjorError:
                raise
            except Exception as e:
                raise TransportError(str(e), action=action) from e

    async def _send_with_token(
        self, action: str, msg: dict[str, Any], token: WhitelistedToken, amount: int
    ) -> TxResult:
        """Send *msg* moving *amount* of *token* into the cooperative contract."""
        if token.is_native:
            return await self._execute(
                action, self.contract_address, msg, funds=(Coin(token.denom, amount),)
            )

        token_contract = token.contract_addr or ""
        await self._reserve_allowance(token_contract, amount)
        try:
            return await self._execute(action, self.contract_address, msg)
        except AjorError:
            # The grant was confirmed; keep it for a retry.
            self._release_allowance(token_contract, amount)
            raise
        finally:
            self._reserved[(token_contract, self.contract_address)] -= amount

    # ------------------------------------------------------------------
    # Allowances
    # ------------------------------------------------------------------

    def tracked_allowance(self, token_contract: str, spender: str | None = None) -> int:
        """Granted allowance not yet reserved by an in-flight call."""
        return self._allowances.get((token_contract, spender or self.contract_address), 0)

    async def _reserve_allowance(self, token_contract: str, amount: int) -> None:
        """Make sure *amount* of allowance is granted and held for one call.

        The ledger is debited before the first await, so concurrent calls
        never count the same grant twice.
        """
        owner = self.require_account("increase_allowance")
        key = (token_contract, self.contract_address)

        if self._query_allowances:
            on_chain = await self.get_allowance(token_contract, owner)
            self._allowances[key] = max(0, on_chain - self._reserved.get(key, 0))

        available = self._allowances.get(key, 0) if self._track_allowances else 0
        taken = min(available, amount)
        if self._track_allowances:
            self._allowances[key] = available - taken
        self._reserved[key] = self._reserved.get(key, 0) + amount

        shortfall = amount - taken
        if shortfall <= 0:
            logger.info(
                "Allowance of %s on %s already covers %s", available, token_contract, amount
            )
            return
        try:
            await self._grant_allowance(token_contract, self.contract_address, shortfall)
        except AjorError:
            self._reserved[key] -= amount
            self._release_allowance(token_contract, taken)
            raise

    def _release_allowance(self, token_contract: str, amount: int) -> None:
        if self._track_allowances and amount:
            key = (token_contract, self.contract_address)
            self._allowances[key] = self._allowances.get(key, 0) + amount

    async def _grant_allowance(self, token_contract: str, spender: str, amount: Any) -> TxResult:
        action = "increase_allowance"
        self.require_account(action)
        with tagged(action):
            msg = codec.increase_allowance_msg(spender, amount)
        return await self._execute(action, token_contract, msg)

    async def increase_allowance(
        self, token_contract: str, spender: str, amount: Any
    ) -> TxResult:
        """CW20 ``increase_allowance`` against *token_contract*."""
        self.require_account("increase_allowance")
        with tagged("increase_allowance"):
            value = codec.to_uint128(amount)
        result = await self._grant_allowance(token_contract, spender, value)
        if self._track_allowances:
            key = (token_contract, spender)
            self._allowances[key] = self._allowances.get(key, 0) + value
        return result

    async def get_allowance(
        self, token_contract: str, owner: str | None = None, spender: str | None = None
    ) -> int:
        """Remaining CW20 allowance of *owner* towards *spender*."""
        action = "allowance"
        owner = owner or self.require_account(action)
        with tagged(action):
            msg = codec.allowance_query(owner, spender or self.contract_address)
            return responses.decode_allowance(await self._query(action, token_contract, msg))

    # ------------------------------------------------------------------
    # Execute operations
    # ------------------------------------------------------------------

    async def update_token_price(self, token_addr: str, usd_price: Any) -> TxResult:
        action = "update_token_price"
        self.require_account(action)
        with tagged(action):
            msg = codec.update_token_price_msg(token_addr, usd_price)
        return await self._execute(action, self.contract_address, msg)

    async def create_cooperative(
        self,
        name: str,
        risk_profile: RiskProfile,
        initial_members: Sequence[Member],
        initial_whitelisted_tokens: Sequence[WhitelistedToken],
    ) -> TxResult:
        action = "create_cooperative"
        self.require_account(action)
        with tagged(action):
            if len(initial_members) > MAX_INITIAL_MEMBERS:
                raise ValidationError(
                    f"at most {MAX_INITIAL_MEMBERS} initial members, got {len(initial_members)}"
                )
            if len(initial_whitelisted_tokens) > MAX_WHITELISTED_TOKENS:
                raise ValidationError(
                    f"at most {MAX_WHITELISTED_TOKENS} whitelisted tokens, "
                    f"got {len(initial_whitelisted_tokens)}"
                )
            # Checks member ledgers against the whitelist keyspace.
            cooperative = Cooperative(
                name=name,
                risk_profile=risk_profile,
                members=tuple(initial_members),
                whitelisted_tokens=tuple(initial_whitelisted_tokens),
            )
            msg = codec.create_cooperative_msg(
                cooperative.name,
                cooperative.risk_profile.to_wire(),
                [m.to_wire() for m in cooperative.members],
                [t.to_wire() for t in cooperative.whitelisted_tokens],
            )
        return await self._execute(action, self.contract_address, msg)

    async def fund_cooperative(
        self, cooperative_name: str, token: WhitelistedToken, amount: Any
    ) -> TxResult:
        """Contribute *amount* of *token*; CW20 tokens get an allowance first."""
        action = "fund_cooperative"
        self.require_account(action)
        with tagged(action):
            value = codec.to_uint128(amount)
            msg = codec.fund_cooperative_msg(
                cooperative_name, token.identifier, token.is_native, value
            )
        return await self._send_with_token(action, msg, token, value)

    async def borrow(
        self,
        cooperative_name: str,
        tokens_in: Sequence[str],
        amount_in: Sequence[Any],
        token_out: str,
        min_amount_out: Any,
    ) -> TxResult:
        """Borrow *token_out* against contributed collateral.

        Collateral comes from the member's contributions, so no funds are
        attached. Mismatched collateral lists fail before any call.
        """
        action = "borrow"
        self.require_account(action)
        with tagged(action):
            msg = codec.borrow_msg(
                cooperative_name, list(tokens_in), list(amount_in), token_out, min_amount_out
            )
        return await self._execute(action, self.contract_address, msg)

    async def repay(
        self, cooperative_name: str, token: WhitelistedToken, amount: Any = None
    ) -> TxResult:
        """Repay the member's active loan in *token*.

        When *amount* is omitted it is read from the first active loan of the
        bound account.
        """
        action = "repay"
        sender = self.require_account(action)
        with tagged(action):
            msg = codec.repay_msg(cooperative_name, token.identifier)
            if amount is None:
                value = await self._outstanding_loan(cooperative_name, sender)
            else:
                value = codec.to_uint128(amount)
        return await self._send_with_token(action, msg, token, value)

    async def _outstanding_loan(self, cooperative_name: str, address: str) -> int:
        member = await self.get_member_info(cooperative_name, address)
        if member is None:
            raise PreconditionError(f"{address} is not a member of '{cooperative_name}'")
        loans = member.active()
        if not loans:
            raise PreconditionError(f"{address} has no active loan in '{cooperative_name}'")
        return loans[0].amount

    async def withdraw_contribution_and_reward(
        self, cooperative_name: str, token_addr: str
    ) -> TxResult:
        action = "withdraw_contribution_and_reward"
        self.require_account(action)
        with tagged(action):
            msg = codec.withdraw_contribution_and_reward_msg(cooperative_name, token_addr)
        return await self._execute(action, self.contract_address, msg)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_cooperative(self, cooperative_name: str) -> Cooperative:
        action = "get_cooperative"
        with tagged(action):
            msg = codec.get_cooperative_query(cooperative_name)
            return responses.decode_cooperative(
                await self._query(action, self.contract_address, msg)
            )

    async def get_member_info(self, cooperative_name: str, member: str) -> Member | None:
        action = "get_member_info"
        with tagged(action):
            msg = codec.get_member_info_query(cooperative_name, member)
            return responses.decode_member_info(
                await self._query(action, self.contract_address, msg)
            )

    async def get_member_contribution_and_share(
        self, cooperative_name: str, member_address: str
    ) -> MemberContributionAndShare:
        action = "member_contribution_and_share"
        with tagged(action):
            msg = codec.member_contribution_and_share_query(cooperative_name, member_address)
            return responses.decode_member_contribution_and_share(
                await self._query(action, self.contract_address, msg)
            )

    async def list_cooperatives(
        self, min: str | None = None, max: str | None = None
    ) -> list[str]:
        action = "list_cooperatives"
        with tagged(action):
            msg = codec.list_cooperatives_query(min, max)
            return responses.decode_cooperative_list(
                await self._query(action, self.contract_address, msg)
            )

    async def get_proposal(self, proposal_id: int) -> Proposal:
        action = "get_proposal"
        with tagged(action):
            msg = codec.get_proposal_query(proposal_id)
            return responses.decode_proposal(
                await self._query(action, self.contract_address, msg)
            )

    async def get_whitelisted_tokens(self, cooperative_name: str) -> list[WhitelistedToken]:
        action = "get_whitelisted_tokens"
        with tagged(action):
            msg = codec.get_whitelisted_tokens_query(cooperative_name)
            return responses.decode_whitelisted_tokens(
                await self._query(action, self.contract_address, msg)
            )

    async def get_token_id(self, token: str) -> int:
        action = "get_token_id"
        with tagged(action):
            msg = codec.get_token_id_query(token)
            return responses.decode_token_id(
                await self._query(action, self.contract_address, msg)
            )
