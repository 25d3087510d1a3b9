"""Configuration loader: reads config.yaml, interpolates env vars and validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChainConfig:
    lcd_endpoints: tuple[str, ...] = ()
    rpc_timeout: int = 30
    fee: str = "auto"


@dataclass(frozen=True)
class ContractConfig:
    """One deployment of the cooperative contract."""

    address: str = ""
    native_denom: str = "untrn"


@dataclass(frozen=True)
class WalletConfig:
    label: str = ""
    address: str = ""


@dataclass(frozen=True)
class OrchestratorConfig:
    track_allowances: bool = True
    query_allowances: bool = False
    verify_proposal_state: bool = True


@dataclass(frozen=True)
class AppConfig:
    chain: ChainConfig = field(default_factory=ChainConfig)
    wallet: WalletConfig = field(default_factory=WalletConfig)
    deployments: dict[str, ContractConfig] = field(default_factory=dict)
    default_deployment: str = ""
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)

    def deployment(self, name: str | None = None) -> ContractConfig:
        """Return the named deployment, or the default one."""
        key = name or self.default_deployment
        try:
            return self.deployments[key]
        except KeyError:
            raise ValueError(f"Unknown deployment '{key}'") from None


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_chain(raw: dict[str, Any]) -> ChainConfig:
    return ChainConfig(
        lcd_endpoints=tuple(raw.get("lcd_endpoints", [])),
        rpc_timeout=int(raw.get("rpc_timeout", 30)),
        fee=str(raw.get("fee", "auto")),
    )


def _build_wallet(raw: dict[str, Any]) -> WalletConfig:
    return WalletConfig(
        label=raw.get("label", ""),
        address=raw.get("address", ""),
    )


def _build_deployments(raw: dict[str, Any]) -> dict[str, ContractConfig]:
    deployments: dict[str, ContractConfig] = {}
    for name, cfg in raw.items():
        deployments[name] = ContractConfig(
            address=cfg.get("address", ""),
            native_denom=cfg.get("native_denom", "untrn"),
        )
    return deployments


def _build_orchestrator(raw: dict[str, Any]) -> OrchestratorConfig:
    return OrchestratorConfig(
        track_allowances=bool(raw.get("track_allowances", True)),
        query_allowances=bool(raw.get("query_allowances", False)),
        verify_proposal_state=bool(raw.get("verify_proposal_state", True)),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (two levels up from this file).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    deployments = _build_deployments(raw.get("deployments", {}))
    default_deployment = raw.get("default_deployment") or next(iter(deployments), "")

    cfg = AppConfig(
        chain=_build_chain(raw.get("chain", {})),
        wallet=_build_wallet(raw.get("wallet", {})),
        deployments=deployments,
        default_deployment=default_deployment,
        orchestrator=_build_orchestrator(raw.get("orchestrator", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.chain.lcd_endpoints:
        raise ValueError("At least one LCD endpoint must be configured")
    if cfg.chain.rpc_timeout <= 0:
        raise ValueError("rpc_timeout must be positive")

    if not cfg.deployments:
        raise ValueError("At least one contract deployment must be configured")

    for name, deployment in cfg.deployments.items():
        if not deployment.address:
            raise ValueError(f"Deployment '{name}' has no contract address")
        if not deployment.native_denom:
            raise ValueError(f"Deployment '{name}' has no native denom")

    if cfg.default_deployment not in cfg.deployments:
        raise ValueError(
            f"default_deployment references unknown deployment '{cfg.default_deployment}'"
        )
