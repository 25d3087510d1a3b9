"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from decimal import Decimal
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from ajor.config import (
    AppConfig,
    ChainConfig,
    ContractConfig,
    OrchestratorConfig,
    WalletConfig,
)
from ajor.models import (
    Cooperative,
    Loan,
    Member,
    RiskProfile,
    TxResult,
    WhitelistedToken,
)
from ajor.services import CooperativeClient

CONTRACT_ADDR = "neutron1ajorcontract0000000000000000000000000000000000000000000"
CW20_ADDR = "neutron1sr60e2velepytzsdyuutcmccl9n2p2lu3pjcggllxyc9rzyu562sqegazj"
ALICE = "neutron1alice0000000000000000000000000000000"
BOB = "neutron1bob00000000000000000000000000000000"


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_chain_config() -> ChainConfig:
    return ChainConfig(
        lcd_endpoints=("https://lcd1.example.com", "https://lcd2.example.com"),
        rpc_timeout=10,
    )


@pytest.fixture()
def sample_contract_config() -> ContractConfig:
    return ContractConfig(address=CONTRACT_ADDR, native_denom="untrn")


@pytest.fixture()
def sample_app_config(
    sample_chain_config: ChainConfig, sample_contract_config: ContractConfig
) -> AppConfig:
    return AppConfig(
        chain=sample_chain_config,
        wallet=WalletConfig(label="test-wallet", address=ALICE),
        deployments={"testnet": sample_contract_config},
        default_deployment="testnet",
        orchestrator=OrchestratorConfig(),
    )


# ---------------------------------------------------------------------------
# Model fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def native_token() -> WhitelistedToken:
    return WhitelistedToken(denom="untrn", is_native=True, max_loan_ratio=Decimal("0.5"))


@pytest.fixture()
def cw20_token() -> WhitelistedToken:
    return WhitelistedToken(
        denom="tATOM",
        is_native=False,
        max_loan_ratio=Decimal("0.7"),
        contract_addr=CW20_ADDR,
    )


@pytest.fixture()
def sample_risk_profile() -> RiskProfile:
    return RiskProfile(interest_rate=Decimal("0.05"), collateralization_ratio=Decimal("1.5"))


@pytest.fixture()
def sample_cooperative(
    sample_risk_profile: RiskProfile,
    native_token: WhitelistedToken,
    cw20_token: WhitelistedToken,
) -> Cooperative:
    return Cooperative(
        name="farmers",
        risk_profile=sample_risk_profile,
        members=(
            Member(address=ALICE, contribution=((0, 1000),), share=((0, 1000),)),
            Member(address=BOB, contribution=((1, 250),)),
        ),
        whitelisted_tokens=(native_token, cw20_token),
        total_funds=((0, 1000), (1, 250)),
    )


# ---------------------------------------------------------------------------
# Sample wire data
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_cooperative_wire() -> dict:
    return {
        "name": "farmers",
        "total_funds": [[0, "1000"], [1, "250"]],
        "members": [
            {
                "address": ALICE,
                "contribution": [[0, "1000"]],
                "share": [[0, "1000"]],
                "joined_at": 1700000000,
                "reputation_score": "1",
                "active_loans": [],
            }
        ],
        "risk_profile": {"interest_rate": "0.05", "collateralization_ratio": "1.5"},
        "whitelisted_tokens": [
            {"denom": "untrn", "is_native": True, "max_loan_ratio": "0.5"},
            {
                "denom": "tATOM",
                "contract_addr": CW20_ADDR,
                "is_native": False,
                "max_loan_ratio": "0.7",
            },
        ],
    }


@pytest.fixture()
def sample_loan_wire() -> dict:
    return {
        "id": 3,
        "amount": "400",
        "token": CW20_ADDR,
        "collaterals": ["untrn"],
        "collaterals_amount": ["800"],
        "interest_rate": "0.05",
        "status": "Active",
    }


@pytest.fixture()
def sample_proposal_wire() -> dict:
    return {
        "id": 7,
        "description": "Whitelist tATOM",
        "data": {
            "denom": "tATOM",
            "token_addr": CW20_ADDR,
            "is_native": False,
            "max_loan_ratio": "0.7",
        },
        "votes": [{"voter": ALICE, "conviction": "100", "voted_at": 1700000100}],
        "aye_count": 1,
        "nay_count": 0,
        "aye_weights": 100,
        "nay_weights": 0,
        "end_time": 1700086400,
        "proposal_type": "WhitelistToken",
        "executed": False,
    }


def tx_result(tx_hash: str = "ABC123", **attributes: str) -> TxResult:
    """Confirmed TxResult carrying *attributes* on a wasm event."""
    return TxResult(
        transaction_hash=tx_hash,
        events=(
            {
                "type": "wasm",
                "attributes": [{"key": k, "value": v} for k, v in attributes.items()],
            },
        ),
        height=100,
        gas_used=150000,
    )


@pytest.fixture()
def make_tx_result():
    return tx_result


# ---------------------------------------------------------------------------
# Chain / client fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def mock_chain() -> AsyncMock:
    chain = AsyncMock()
    chain.execute = AsyncMock(return_value=tx_result())
    chain.query = AsyncMock(return_value={})
    return chain


@pytest.fixture()
def client(mock_chain: AsyncMock, sample_contract_config: ContractConfig) -> CooperativeClient:
    coop_client = CooperativeClient(mock_chain, sample_contract_config)
    coop_client.connect(ALICE)
    return coop_client


@pytest.fixture()
def disconnected_client(
    mock_chain: AsyncMock, sample_contract_config: ContractConfig
) -> CooperativeClient:
    return CooperativeClient(mock_chain, sample_contract_config)


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent(f"""\
    chain:
      lcd_endpoints: ["https://lcd.example.com"]
      rpc_timeout: 10
      fee: auto
    wallet:
      label: test-wallet
      address: "{ALICE}"
    deployments:
      testnet:
        address: "{CONTRACT_ADDR}"
        native_denom: untrn
      legacy:
        address: neutron1legacy
        native_denom: untrn
    default_deployment: testnet
    orchestrator:
      track_allowances: true
      query_allowances: false
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file


@pytest.fixture()
def sample_loan(sample_loan_wire: dict) -> Loan:
    return Loan.from_wire(sample_loan_wire)
