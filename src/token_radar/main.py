"""Token radar process entry point."""

import asyncio
import logging
import os
import signal
import sys
from typing import Any, Dict

from dotenv import load_dotenv

load_dotenv()

from .service import TokenRadarService

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler('token_radar.log'),
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger(__name__)


def _flag(raw: str):
    raw = raw.strip().lower()
    if raw in ('1', 'true', 'yes'):
        return True
    if raw in ('0', 'false', 'no'):
        return False
    return None


def _config_from_env() -> Dict[str, Any]:
    """Build config dict from environment variables."""
    config: Dict[str, Any] = {}

    # Radar
    radar: Dict[str, Any] = {}
    chains_raw = os.getenv('RADAR_CHAINS', '').strip()
    if chains_raw:
        radar['chains'] = [c.strip() for c in chains_raw.split(',') if c.strip()]
    limit = os.getenv('RADAR_LIMIT', '').strip()
    if limit:
        radar['limit'] = int(limit)
    for env, key in (('RADAR_INCLUDE_SOCIAL', 'include_social'), ('RADAR_INCLUDE_WALLET', 'include_wallet')):
        value = _flag(os.getenv(env, ''))
        if value is not None:
            radar[key] = value
    if radar:
        config['radar'] = radar

    # Policy
    policy: Dict[str, Any] = {}
    interval = os.getenv('RADAR_INTERVAL_SECONDS', '').strip()
    if interval:
        policy['scan_interval_seconds'] = float(interval)
    min_liquidity = os.getenv('MIN_LIQUIDITY', '').strip()
    if min_liquidity:
        policy['min_liquidity'] = float(min_liquidity)
    min_conditions = os.getenv('MIN_CONDITIONS_TO_PASS', '').strip()
    if min_conditions:
        policy['min_conditions_to_pass'] = int(min_conditions)
    trailing = os.getenv('TRAILING_STOP_PERCENT', '').strip()
    if trailing:
        policy['trailing_stop_percent'] = float(trailing)
    liquidity_drop = os.getenv('LIQUIDITY_DROP_THRESHOLD', '').strip()
    if liquidity_drop:
        policy['liquidity_drop_threshold'] = float(liquidity_drop)
    if policy:
        config['policy'] = policy

    # Upstreams
    etherscan_key = os.getenv('ETHERSCAN_API_KEY', '').strip()
    bscscan_key = os.getenv('BSCSCAN_API_KEY', '').strip()
    solana_rpc = os.getenv('SOLANA_RPC_URL', '').strip()
    if etherscan_key or bscscan_key or solana_rpc:
        config['wallet'] = {}
        if etherscan_key or bscscan_key:
            config['wallet']['explorer_keys'] = {
                'ethereum': etherscan_key,
                'base': etherscan_key,
                'bsc': bscscan_key,
            }
        if solana_rpc:
            config['wallet']['solana_rpc_url'] = solana_rpc

    bearer = os.getenv('X_BEARER_TOKEN', '').strip()
    if bearer:
        config['social'] = {'bearer_token': bearer}

    timeout = os.getenv('HTTP_TIMEOUT_SECONDS', '').strip()
    if timeout:
        config['sources'] = {'timeout': float(timeout)}

    return config


async def main():
    """Main entry point: run the continuous radar until SIGINT/SIGTERM."""
    config = _config_from_env()
    service = TokenRadarService(config if config else None)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    try:
        await service.start_continuous_radar()
        await stop.wait()
        logger.info("Shutdown signal received")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
    finally:
        await service.close()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
