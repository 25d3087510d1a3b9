"""Integration tests for the governance workflow."""
from __future__ import annotations

from dataclasses import replace
from unittest.mock import AsyncMock

import pytest

from ajor.config import AppConfig, OrchestratorConfig
from ajor.errors import MalformedMessageError, NotConnectedError, ProposalStateError
from ajor.models import Coin, Proposal, ProposalData, ProposalState, ProposalType
from ajor.services import CooperativeClient, GovernanceWorkflow

CONTRACT = "neutron1ajorcontract0000000000000000000000000000000000000000000"
BEFORE_END = 1700000000
AFTER_END = 1700090000


@pytest.fixture()
def governance(client: CooperativeClient) -> GovernanceWorkflow:
    return GovernanceWorkflow(client, clock=lambda: BEFORE_END)


@pytest.fixture()
def new_proposal() -> Proposal:
    return Proposal(
        description="Add bob",
        proposal_type=ProposalType.ADD_MEMBER,
        end_time=1700086400,
        data=ProposalData(new_member_addr="neutron1bob"),
        id=999,
    )


class TestPropose:
    @pytest.mark.asyncio
    async def test_id_read_from_events(
        self,
        governance: GovernanceWorkflow,
        mock_chain: AsyncMock,
        new_proposal: Proposal,
        make_tx_result,
    ) -> None:
        mock_chain.execute.return_value = make_tx_result("PROP", proposal_id="12")

        assert await governance.propose("farmers", new_proposal) == 12

        msg = mock_chain.execute.await_args.args[2]
        assert msg["propose"]["cooperative_name"] == "farmers"
        assert msg["propose"]["proposal"]["proposal_type"] == "AddMember"
        assert mock_chain.execute.await_args.kwargs["funds"] == ()

    @pytest.mark.asyncio
    async def test_created_proposal_is_open(
        self,
        governance: GovernanceWorkflow,
        mock_chain: AsyncMock,
        new_proposal: Proposal,
        make_tx_result,
    ) -> None:
        mock_chain.execute.return_value = make_tx_result("PROP", proposal_id="12")
        proposal_id = await governance.propose("farmers", new_proposal)

        stored = dict(mock_chain.execute.await_args.args[2]["propose"]["proposal"], id=12)
        mock_chain.query.return_value = {"proposal": stored}
        proposal = await governance.get_proposal(proposal_id)

        mock_chain.query.assert_awaited_once_with(CONTRACT, {"get_proposal": {"proposal_id": 12}})
        assert proposal.id == 12
        assert proposal.description == "Add bob"
        assert proposal.executed is False
        assert proposal.end_time > BEFORE_END
        assert await governance.proposal_state(proposal_id) is ProposalState.OPEN

    @pytest.mark.asyncio
    async def test_missing_id_attribute(
        self, governance: GovernanceWorkflow, mock_chain: AsyncMock, new_proposal: Proposal
    ) -> None:
        with pytest.raises(MalformedMessageError, match="did not report a proposal id") as exc:
            await governance.propose("farmers", new_proposal)
        assert exc.value.action == "propose"

    @pytest.mark.asyncio
    async def test_requires_account(
        self, disconnected_client: CooperativeClient, new_proposal: Proposal
    ) -> None:
        with pytest.raises(NotConnectedError):
            await GovernanceWorkflow(disconnected_client).propose("farmers", new_proposal)


class TestVote:
    @pytest.mark.asyncio
    async def test_zero_weight_attaches_no_funds(
        self, governance: GovernanceWorkflow, mock_chain: AsyncMock, sample_proposal_wire: dict
    ) -> None:
        mock_chain.query.return_value = {"proposal": sample_proposal_wire}

        await governance.vote("farmers", 3, "0", False)

        call = mock_chain.execute.await_args
        assert call.args[2] == {
            "vote": {"cooperative_name": "farmers", "proposal_id": 3, "weight": "0", "aye": False}
        }
        assert call.kwargs["funds"] == ()

    @pytest.mark.asyncio
    async def test_weight_bonded_in_native_denom(
        self, governance: GovernanceWorkflow, mock_chain: AsyncMock, sample_proposal_wire: dict
    ) -> None:
        mock_chain.query.return_value = {"proposal": sample_proposal_wire}

        await governance.vote("farmers", 7, 100, True)

        assert mock_chain.execute.await_args.kwargs["funds"] == (Coin("untrn", 100),)

    @pytest.mark.asyncio
    async def test_closed_proposal_rejected_locally(
        self, client: CooperativeClient, mock_chain: AsyncMock, sample_proposal_wire: dict
    ) -> None:
        mock_chain.query.return_value = {"proposal": sample_proposal_wire}
        governance = GovernanceWorkflow(client, clock=lambda: AFTER_END)

        with pytest.raises(ProposalStateError, match="executable") as exc:
            await governance.vote("farmers", 7, 10, True)

        assert exc.value.action == "vote"
        mock_chain.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_verification_can_be_disabled(
        self, client: CooperativeClient, mock_chain: AsyncMock
    ) -> None:
        governance = GovernanceWorkflow(client, verify_state=False)

        await governance.vote("farmers", 7, 10, True)

        mock_chain.query.assert_not_awaited()
        mock_chain.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_from_config_without_verification(
        self, client: CooperativeClient, mock_chain: AsyncMock, sample_app_config: AppConfig
    ) -> None:
        config = replace(
            sample_app_config, orchestrator=OrchestratorConfig(verify_proposal_state=False)
        )
        governance = GovernanceWorkflow.from_config(client, config)

        await governance.vote("farmers", 7, 10, True)

        mock_chain.query.assert_not_awaited()
        mock_chain.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_from_config_verifies_by_default(
        self,
        client: CooperativeClient,
        mock_chain: AsyncMock,
        sample_app_config: AppConfig,
        sample_proposal_wire: dict,
    ) -> None:
        sample_proposal_wire["executed"] = True
        mock_chain.query.return_value = {"proposal": sample_proposal_wire}
        governance = GovernanceWorkflow.from_config(client, sample_app_config)

        with pytest.raises(ProposalStateError):
            await governance.vote("farmers", 7, 10, True)

        mock_chain.execute.assert_not_awaited()


class TestWithdrawAndExecute:
    @pytest.mark.asyncio
    async def test_withdraw_weight(
        self, governance: GovernanceWorkflow, mock_chain: AsyncMock, sample_proposal_wire: dict
    ) -> None:
        mock_chain.query.return_value = {"proposal": sample_proposal_wire}

        await governance.withdraw_weight("farmers", 7)

        assert mock_chain.execute.await_args.args[2] == {
            "withdraw_weight": {"cooperative_name": "farmers", "proposal_id": 7}
        }

    @pytest.mark.asyncio
    async def test_execute_after_deadline(
        self, client: CooperativeClient, mock_chain: AsyncMock, sample_proposal_wire: dict
    ) -> None:
        mock_chain.query.return_value = {"proposal": sample_proposal_wire}
        governance = GovernanceWorkflow(client, clock=lambda: AFTER_END)

        assert await governance.proposal_state(7) is ProposalState.EXECUTABLE
        await governance.execute_proposal("farmers", 7)

        assert mock_chain.execute.await_args.args[1] == CONTRACT
        assert mock_chain.execute.await_args.args[2] == {
            "execute_proposal": {"cooperative_name": "farmers", "proposal_id": 7}
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize("step", ["withdraw_weight", "execute_proposal"])
    async def test_executed_proposal_rejected(
        self,
        governance: GovernanceWorkflow,
        mock_chain: AsyncMock,
        sample_proposal_wire: dict,
        step: str,
    ) -> None:
        sample_proposal_wire["executed"] = True
        mock_chain.query.return_value = {"proposal": sample_proposal_wire}

        with pytest.raises(ProposalStateError, match="executed"):
            await getattr(governance, step)("farmers", 7)

        mock_chain.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_get_proposal(
        self, governance: GovernanceWorkflow, mock_chain: AsyncMock, sample_proposal_wire: dict
    ) -> None:
        mock_chain.query.return_value = {"proposal": sample_proposal_wire}

        proposal = await governance.get_proposal(7)

        mock_chain.query.assert_awaited_once_with(CONTRACT, {"get_proposal": {"proposal_id": 7}})
        assert proposal.description == "Whitelist tATOM"
