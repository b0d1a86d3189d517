"""Process entry point: run one trade and exit with the workflow's status."""
import asyncio
import os
import sys
from pathlib import Path

import yaml

from .config import BotConfig
from .logging_setup import logger, setup_logging
from .secrets import load_wallet_secrets
from .workflow import TradeWorkflow, WorkflowResult

DEFAULT_CONFIG_PATH = "config.yaml"


def load_config() -> BotConfig:
    """Load config from CONFIG_PATH (default ``config.yaml``), or defaults if absent."""
    config_path = os.environ.get("CONFIG_PATH", DEFAULT_CONFIG_PATH)
    if Path(config_path).exists():
        return BotConfig.from_yaml(config_path)
    return BotConfig.default()


async def run(config: BotConfig) -> WorkflowResult:
    # requires the drift extra
    from .drift_client import DriftConnector

    secrets = load_wallet_secrets()
    connector = DriftConnector(config)
    try:
        return await TradeWorkflow(config, connector, secrets).run()
    finally:
        await connector.close()


def main() -> int:
    try:
        config = load_config()
    except (TypeError, ValueError, yaml.YAMLError) as e:
        logger.error(f"Invalid configuration | error={e}")
        return 1
    setup_logging(
        log_file=config.logging.log_file,
        level=config.logging.log_level,
        enable_console=config.logging.enable_console,
    )
    try:
        result = asyncio.run(run(config))
    except ValueError as e:
        logger.error(f"Bot failed to start | error={e}")
        return 1
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
