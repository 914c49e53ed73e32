"""
MonadScan API client.

Used for display-only data (held tokens, market cap, price). A failed
lookup returns an empty result so it never blocks a trading flow.
"""

import asyncio
import logging
from typing import Dict, List

import requests

logger = logging.getLogger(__name__)

HEADERS = {
    "Accept": "application/json",
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
}


class ExplorerClient:
    def __init__(self, api_url: str, timeout: float = 10, session: requests.Session = None):
        self.api_url = api_url.rstrip('/')
        self.timeout = timeout
        self.http = session or requests.Session()

    def _get_result(self, path: str):
        response = self.http.get(f"{self.api_url}/{path}", headers=HEADERS, timeout=self.timeout)
        response.raise_for_status()
        return response.json().get('result')

    async def get_wallet_tokens(self, address: str) -> List[Dict]:
        """Get ERC20 tokens held by a wallet address."""
        try:
            result = await asyncio.to_thread(self._get_result, f"address/{address}/tokens")
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error fetching wallet tokens for {address}: {e}")
            return []
        return result if isinstance(result, list) else []

    async def get_token_details(self, token_address: str) -> Dict:
        """Get token market data (marketCap, price) when the explorer knows it."""
        try:
            result = await asyncio.to_thread(self._get_result, f"token/{token_address}")
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error fetching token details for {token_address}: {e}")
            return {}
        return result if isinstance(result, dict) else {}
