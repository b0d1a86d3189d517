"""Paper-trading demo of the bot workflow.

Shows:
1. Building a configuration in code
2. Running the workflow against the in-memory exchange
3. Delegate mode with a freshly generated delegate key
4. Inspecting the result and the recorded exchange calls
"""
import asyncio
import sys
from decimal import Decimal
from pathlib import Path

# Add parent directory to path so we can import drift_trader
sys.path.insert(0, str(Path(__file__).parent.parent))

from drift_trader.config import BotConfig, TradingConfig
from drift_trader.logging_setup import logger, setup_logging
from drift_trader.secrets import WalletSecrets
from drift_trader.simulated import SimulatedExchange
from drift_trader.timing import InstantClock
from drift_trader.wallet import generate_keypair
from drift_trader.workflow import TradeWorkflow


async def run_once(use_delegate: bool) -> int:
    config = BotConfig(trading=TradingConfig(use_delegate=use_delegate))

    exchange = SimulatedExchange(creation_lag_reads=1)
    main_wallet = generate_keypair()
    exchange.fund_wallet(main_wallet.address, Decimal("1"))

    workflow = TradeWorkflow(
        config,
        exchange,
        WalletSecrets(main_secret=main_wallet.secret_hex),
        clock=InstantClock(),
    )
    result = await workflow.run()

    logger.info(f"Result | state={result.state.name} exit_code={result.exit_code}")
    logger.info(f"History | {' -> '.join(s.name for s in result.history)}")
    for name, kwargs in exchange.mutating_calls:
        logger.info(f"Exchange call | {name} {kwargs}")
    logger.info(f"Simulated waits | {workflow.clock.sleeps}")
    return result.exit_code


async def main():
    setup_logging(log_file="paper_trade.log", level="INFO", enable_console=True)
    logger.info("=== Paper trade: direct mode ===")
    await run_once(use_delegate=False)
    logger.info("=== Paper trade: delegate mode ===")
    await run_once(use_delegate=True)


if __name__ == "__main__":
    asyncio.run(main())
