"""Proposal lifecycle: propose, vote, withdraw weight, execute.

The contract owns quorum and majority; this module only checks that the
proposal is in a state where the next step can succeed.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Callable

from ..config import AppConfig
from ..errors import MalformedMessageError, ProposalStateError
from ..models import Coin, Proposal, ProposalState, TxResult
from ..protocol import codec
from .orchestrator import CooperativeClient, tagged

logger = logging.getLogger(__name__)

PROPOSAL_ID_ATTRIBUTE = "proposal_id"


class GovernanceWorkflow:
    def __init__(
        self,
        client: CooperativeClient,
        verify_state: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._verify_state = verify_state
        self._clock = clock

    @classmethod
    def from_config(cls, client: CooperativeClient, config: AppConfig) -> GovernanceWorkflow:
        return cls(client, verify_state=config.orchestrator.verify_proposal_state)

    async def get_proposal(self, proposal_id: int) -> Proposal:
        return await self._client.get_proposal(proposal_id)

    async def proposal_state(self, proposal_id: int) -> ProposalState:
        proposal = await self.get_proposal(proposal_id)
        return proposal.state(self._clock())

    async def propose(self, cooperative_name: str, proposal: Proposal) -> int:
        """Submit *proposal* and return the id the contract assigned to it.

        The id on *proposal* is advisory; the authoritative one is read from
        the ``proposal_id`` attribute of the confirmed transaction.
        """
        action = "propose"
        self._client.require_account(action)
        with tagged(action):
            msg = codec.propose_msg(cooperative_name, proposal.to_wire())
        result = await self._client._execute(action, self._client.contract_address, msg)

        raw_id = result.attribute(PROPOSAL_ID_ATTRIBUTE)
        if raw_id is None:
            raise MalformedMessageError(
                f"transaction {result.transaction_hash} did not report a proposal id",
                action=action,
            )
        with tagged(action):
            proposal_id = codec.to_u64(raw_id, PROPOSAL_ID_ATTRIBUTE)
        logger.info("Proposal %d created in '%s'", proposal_id, cooperative_name)
        return proposal_id

    async def vote(
        self, cooperative_name: str, proposal_id: int, weight: Any, aye: bool
    ) -> TxResult:
        """Vote with *weight* of the native denom bonded as conviction.

        A zero weight attaches no funds.
        """
        action = "vote"
        self._client.require_account(action)
        with tagged(action):
            amount = codec.to_uint128(weight, "weight")
            msg = codec.vote_msg(cooperative_name, proposal_id, amount, aye)
        await self._check(action, proposal_id, {ProposalState.OPEN})

        funds: tuple[Coin, ...] = ()
        if amount > 0:
            funds = (Coin(self._client.native_denom, amount),)
        return await self._client._execute(
            action, self._client.contract_address, msg, funds=funds
        )

    async def withdraw_weight(self, cooperative_name: str, proposal_id: int) -> TxResult:
        action = "withdraw_weight"
        self._client.require_account(action)
        with tagged(action):
            msg = codec.withdraw_weight_msg(cooperative_name, proposal_id)
        await self._check(action, proposal_id, {ProposalState.OPEN, ProposalState.EXECUTABLE})
        return await self._client._execute(action, self._client.contract_address, msg)

    async def execute_proposal(self, cooperative_name: str, proposal_id: int) -> TxResult:
        action = "execute_proposal"
        self._client.require_account(action)
        with tagged(action):
            msg = codec.execute_proposal_msg(cooperative_name, proposal_id)
        await self._check(action, proposal_id, {ProposalState.OPEN, ProposalState.EXECUTABLE})
        return await self._client._execute(action, self._client.contract_address, msg)

    async def _check(
        self, action: str, proposal_id: int, allowed: set[ProposalState]
    ) -> None:
        if not self._verify_state:
            return
        state = await self.proposal_state(proposal_id)
        if state not in allowed:
            raise ProposalStateError(
                f"proposal {proposal_id} is {state.value.lower()}", action=action
            )
