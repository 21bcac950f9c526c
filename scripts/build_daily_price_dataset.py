"""
Build a Daily Block + Price Dataset

For every calendar day in a range, resolves the last block of the day (UTC) and
the asset's price in USD / EUR / CHF, then writes one CSV row per day.

Everything goes through the shared memo store, so re-running over an already
processed range makes no network calls.

Usage:
    python scripts/build_daily_price_dataset.py --chain Ethereum --start 2024-01-01 --end 2024-01-31
    python scripts/build_daily_price_dataset.py --chain BSC --address 0x... --start 2024-03-01 --end 2024-03-07
"""

import argparse
import logging
import os
import sys
from typing import Dict, List, Optional

import pandas as pd

# Add parent directory to path for imports
SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.abspath(os.path.join(SCRIPT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from block_resolver import TemporalBlockResolver, get_block_resolver  # noqa: E402
from config import DATA_DIR, chain_slug, parse_chain  # noqa: E402
from date_utils import DateLike, iter_days  # noqa: E402
from errors import ConfigurationError, ResolverError  # noqa: E402
from logging_setup import setup_logging  # noqa: E402
from models import Asset  # noqa: E402
from price_resolver import HistoricalPriceResolver, get_price_resolver  # noqa: E402

logger = logging.getLogger("build_daily_price_dataset")

COLUMNS = ['date', 'block_number', 'target_timestamp', 'usd', 'eur', 'chf']


def default_output_path(chain, address: Optional[str]) -> str:
    asset_part = address.lower() if address else 'native'
    return os.path.join(PROJECT_ROOT, DATA_DIR, f"daily_{chain_slug(chain)}_{asset_part}.csv")


def build_daily_dataset(chain, start: DateLike, end: DateLike, address: Optional[str] = None,
                        decimals: int = 18,
                        block_resolver: Optional[TemporalBlockResolver] = None,
                        price_resolver: Optional[HistoricalPriceResolver] = None) -> pd.DataFrame:
    """
    One row per day from start to end (inclusive).

    A day whose block or price cannot be resolved is logged and kept with empty
    values so the series has no gaps. ConfigurationError aborts the run.
    """
    chain = parse_chain(chain)
    asset = Asset(chain=chain, contract_address=address, decimals=decimals)
    days = list(iter_days(start, end))
    block_resolver = block_resolver if block_resolver is not None else get_block_resolver()
    price_resolver = price_resolver if price_resolver is not None else get_price_resolver()

    logger.info("Building %s days for %s %s", len(days), chain.value, address or "native")

    records: List[Dict] = []
    failed = 0
    for i, day in enumerate(days, 1):
        record = {column: None for column in COLUMNS}
        record['date'] = day.isoformat()

        try:
            resolved = block_resolver.resolve_block_for_date(chain, day)
            record['block_number'] = resolved.block_number
            record['target_timestamp'] = resolved.target_timestamp

            quote = price_resolver.resolve_price(asset, chain, day)
            record.update(quote.to_dict())
        except ConfigurationError:
            raise
        except (ResolverError, ValueError) as e:
            failed += 1
            logger.warning("[%s/%s] %s failed: %s", i, len(days), record['date'], e)
        else:
            logger.info("[%s/%s] %s block %s usd=%s", i, len(days), record['date'],
                        record['block_number'], record['usd'])

        records.append(record)

    if failed:
        logger.warning("%s of %s days could not be resolved", failed, len(days))

    return pd.DataFrame(records, columns=COLUMNS)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description='Build a daily block + price dataset')
    parser.add_argument('--chain', required=True, help='Chain name, e.g. Ethereum, BSC, polygon')
    parser.add_argument('--start', required=True, help='First day (YYYY-MM-DD)')
    parser.add_argument('--end', required=True, help='Last day (YYYY-MM-DD), inclusive')
    parser.add_argument('--address', default=None, help='Token contract address (omit for the native asset)')
    parser.add_argument('--decimals', type=int, default=18, help='Token decimals (default 18)')
    parser.add_argument('--output', default=None, help='CSV path (default data/daily_<chain>_<asset>.csv)')
    args = parser.parse_args(argv)

    setup_logging()

    try:
        chain = parse_chain(args.chain)
        df = build_daily_dataset(chain, args.start, args.end, address=args.address, decimals=args.decimals)
    except ConfigurationError as e:
        logger.critical("Configuration Error: %s", e)
        return 1
    except (ResolverError, ValueError) as e:
        logger.error("Cannot build dataset: %s", e)
        return 1

    output_path = args.output or default_output_path(chain, args.address)
    output_dir = os.path.dirname(output_path)
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)
    df.to_csv(output_path, index=False)

    resolved = int(df['usd'].notna().sum())
    logger.info("Dataset saved to %s (%s rows, %s priced)", output_path, len(df), resolved)
    return 0


if __name__ == "__main__":
    sys.exit(main())
