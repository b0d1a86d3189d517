"""
Drift Trader.

A one-shot trading bot for the Drift perpetuals exchange on Solana:
- Loads the main wallet keypair (env or solana-keygen file)
- Ensures the trading sub-account exists, creating it when absent
- Ensures free collateral covers the order, with a single fallback deposit
- Optionally registers a delegate key and trades through it
- Submits one market order and classifies failures
- Structured logging via loguru
- Configuration-driven (YAML)

Core Modules:
    workflow: Run state machine and orchestrator
    provisioner: Sub-account provisioning
    collateral: Collateral guard
    delegate: Delegate key setup and delegate client
    executor: Order construction, submission and error classification
    exchange: Exchange client capability and data types
    simulated: In-memory exchange for tests and paper runs
    drift_client: driftpy binding (``drift`` extra)
    rpc: Solana JSON-RPC client
    markets: Static market registry
    wallet: Keypairs
    secrets: Wallet secret loading
    config: Configuration loading and validation
    errors: Error taxonomy
    timing: Injectable clocks for polling and settlement waits

Example:
    >>> from drift_trader.config import BotConfig
    >>> from drift_trader.drift_client import DriftConnector
    >>> from drift_trader.secrets import load_wallet_secrets
    >>> from drift_trader.workflow import TradeWorkflow
    >>>
    >>> config = BotConfig.from_yaml("config.yaml")
    >>> workflow = TradeWorkflow(config, DriftConnector(config), load_wallet_secrets())
    >>> result = await workflow.run()
"""

__version__ = "0.1.0"
__all__ = [
    "workflow",
    "provisioner",
    "collateral",
    "delegate",
    "executor",
    "exchange",
    "simulated",
    "rpc",
    "markets",
    "wallet",
    "secrets",
    "config",
    "errors",
    "timing",
]
