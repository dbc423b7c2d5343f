"""
Authentication: wallet setup and API credential derivation.
"""

import logging

from py_clob_client.client import ClobClient
from py_clob_client.clob_types import ApiCreds

from config import Config

logger = logging.getLogger(__name__)


def build_clob_client(cfg: Config) -> ClobClient:
    """
    Build an authenticated ClobClient ready for trading.
    Steps:
      1. Create L1 client with private key
      2. Use configured API credentials, or derive / create them (L2)
      3. Return fully authenticated client
    """
    # L1 client -- can sign orders and derive creds
    client = ClobClient(
        host=cfg.clob_host,
        chain_id=cfg.chain_id,
        key=cfg.private_key,
        signature_type=cfg.signature_type,
        funder=cfg.polymarket_profile_address or None,
    )

    if cfg.poly_api_key and cfg.poly_api_secret and cfg.poly_passphrase:
        creds = ApiCreds(
            api_key=cfg.poly_api_key,
            api_secret=cfg.poly_api_secret,
            api_passphrase=cfg.poly_passphrase,
        )
        logger.debug("Using configured CLOB API credentials")
    else:
        # Creates if first time, derives if already exist
        creds = client.create_or_derive_api_creds()
        logger.debug("Derived CLOB API credentials")
    client.set_api_creds(creds)

    return client
