from flask import Flask, jsonify, request
import logging
import os
import sys
import time

import web3_utils
from block_resolver import get_block_resolver
from config import CHAINS, endpoint_for, parse_chain
from errors import (
    BlockNotFound, ConfigurationError, InvalidDate, InvalidRange,
    OracleUnavailable, PriceUnavailable, ResolverError, UnsupportedChain,
)
from logging_setup import setup_logging
from models import Asset
from price_resolver import get_price_resolver
from wallet_balance import get_balance_on_date

setup_logging()
logger = logging.getLogger(__name__)

app = Flask(__name__)

# Track server start time for uptime calculation
SERVER_START_TIME = time.time()

# Error type -> HTTP status. Subclasses are matched before their bases.
ERROR_STATUS = [
    (InvalidDate, 400),
    (UnsupportedChain, 400),
    (BlockNotFound, 422),
    (InvalidRange, 422),
    (PriceUnavailable, 404),
    (OracleUnavailable, 502),
    (ConfigurationError, 500),
]


@app.errorhandler(ResolverError)
def handle_resolver_error(e):
    """Typed errors go back verbatim; the frontend displays the message as is."""
    for error_type, status in ERROR_STATUS:
        if isinstance(e, error_type):
            break
    else:
        status = 500
    if status >= 500:
        logger.error("[API] %s: %s", type(e).__name__, e)
    return jsonify({'error': str(e)}), status


@app.errorhandler(ValueError)
def handle_value_error(e):
    return jsonify({'error': str(e)}), 400


def _required_arg(name):
    value = (request.args.get(name) or '').strip()
    if not value:
        raise ValueError(f"Missing required parameter: {name}")
    return value


def _asset_from_args(chain):
    try:
        decimals = int(request.args.get('decimals', '18'))
    except ValueError:
        raise ValueError("decimals must be an integer") from None
    address = (request.args.get('address') or '').strip() or None
    return Asset(chain=chain, contract_address=address, decimals=decimals)


@app.route('/api/block')
def api_block():
    """Block representing the end of the given day (UTC)"""
    chain = parse_chain(_required_arg('chain'))
    day = _required_arg('date')
    resolved = get_block_resolver().resolve_block_for_date(chain, day)
    data = resolved.to_dict()
    data['date'] = day
    return jsonify(data)


@app.route('/api/price')
def api_price():
    """Price of one unit of the asset on the given day in USD, EUR and CHF"""
    chain = parse_chain(_required_arg('chain'))
    day = _required_arg('date')
    asset = _asset_from_args(chain)
    quote = get_price_resolver().resolve_price(asset, chain, day)
    return jsonify(quote.to_dict())


@app.route('/api/balance')
def api_balance():
    """Wallet balance at the end of the given day"""
    chain = parse_chain(_required_arg('chain'))
    day = _required_arg('date')
    wallet = _required_arg('wallet')
    asset = _asset_from_args(chain)
    balance = get_balance_on_date(chain, wallet, asset, day, resolver=get_block_resolver())
    return jsonify(balance.to_dict())


@app.route('/api/rpc_stats')
def api_rpc_stats():
    """Get RPC call statistics per chain"""
    stats = web3_utils.get_rpc_stats()

    if stats['total_requests'] == 0:
        return jsonify({
            "status": "no_data",
            "message": "No RPC statistics available yet. System needs to make RPC calls first.",
            "stats": []
        })

    return jsonify({
        "status": "success",
        "timestamp": time.time(),
        "uptime_seconds": int(time.time() - SERVER_START_TIME),
        "total_requests": stats['total_requests'],
        "total_success": stats['total_success'],
        "total_errors": stats['total_errors'],
        "chains": stats['stats'],
    })


def check_endpoints():
    """Resolve every chain's endpoint once so a missing credential stops startup"""
    for chain in CHAINS:
        endpoint_for(chain)


if __name__ == '__main__':
    try:
        check_endpoints()
    except ConfigurationError as e:
        logger.critical("Configuration Error: %s", e)
        sys.exit(1)

    port = int(os.environ.get('PORT', 5000))
    logger.info("[App] Ready on port %s", port)
    app.run(debug=False, host='0.0.0.0', port=port, use_reloader=False)
