#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Irys tag-index (GraphQL) and gateway clients.
Implements retry logic, error handling, and response parsing.
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests

from .logging_setup import get_logger
from .models import Tag

logger = get_logger(__name__)

USER_AGENT = 'IrysDuneAggregator/0.3'


@dataclass
class APIResponse:
    """Generic API response wrapper"""
    success: bool
    data: Any = None
    error: Optional[str] = None
    status_code: Optional[int] = None


SORT_ORDERS = ("ASC", "DESC")

TRANSACTIONS_QUERY = """
query Transactions($tags: [TagFilter!], $first: Int, $after: String) {
  transactions(tags: $tags, first: $first, after: $after, order: %s) {
    edges {
      node { id timestamp tags { name value } }
      cursor
    }
    pageInfo { hasNextPage }
  }
}
"""


def build_transactions_query(tags: Sequence[Tag], first: int = 100, after: Optional[str] = None, order: str = "DESC") -> Tuple[str, Dict[str, Any]]:
    """
    Tag-index transactions query and its variables.

    Each tag becomes one `{name, values: [value]}` filter; the index ANDs them.
    """
    if order not in SORT_ORDERS:
        raise ValueError(f"order must be one of {SORT_ORDERS}, got {order!r}")
    variables: Dict[str, Any] = {
        "tags": [{"name": t.name, "values": [t.value]} for t in tags],
        "first": int(first),
    }
    if after:
        variables["after"] = after
    return TRANSACTIONS_QUERY % order, variables


class IrysGraphQLClient:
    """Client for the Irys tag-index GraphQL API"""

    def __init__(self, endpoint: str, timeout: int = 30, retry_attempts: int = 3, retry_backoff: float = 1.0):
        """
        Initialize tag-index client

        Args:
            endpoint: GraphQL endpoint URL
            timeout: Request timeout in seconds
            retry_attempts: Number of retry attempts
            retry_backoff: Base backoff time between retries
        """
        self.endpoint = endpoint
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff

    def _make_request(self, query: str, variables: Optional[Dict] = None) -> APIResponse:
        """
        Make GraphQL request with retry logic

        Returns:
            APIResponse with success status and data/error
        """
        payload = {
            'query': query,
            'variables': variables or {}
        }

        last_error = None

        for attempt in range(self.retry_attempts):
            try:
                logger.debug(f"Making GraphQL request (attempt {attempt + 1}/{self.retry_attempts})")

                response = requests.post(
                    self.endpoint,
                    json=payload,
                    headers={
                        'Content-Type': 'application/json',
                        'Accept': 'application/json',
                        'User-Agent': USER_AGENT,
                    },
                    timeout=self.timeout
                )

                if response.status_code == 200:
                    data = response.json()

                    if 'errors' in data:
                        error_msg = '; '.join([err.get('message', 'Unknown GraphQL error') for err in data['errors']])
                        logger.error(f"GraphQL errors: {error_msg}")
                        return APIResponse(success=False, error=error_msg, status_code=200)

                    return APIResponse(success=True, data=data.get('data'), status_code=200)

                error_msg = f"HTTP {response.status_code}: {response.text[:200]}"
                logger.warning(f"Request failed: {error_msg}")
                last_error = error_msg

            except requests.exceptions.Timeout:
                last_error = f"Request timeout after {self.timeout}s"
                logger.warning(f"Attempt {attempt + 1} timed out")

            except requests.exceptions.ConnectionError as e:
                last_error = f"Connection error: {str(e)}"
                logger.warning(f"Attempt {attempt + 1} connection failed")

            except ValueError as e:
                last_error = f"Invalid JSON response: {e}"
                logger.error(f"Attempt {attempt + 1} returned invalid JSON: {e}")

            # Exponential backoff before retry (except on last attempt)
            if attempt < self.retry_attempts - 1:
                backoff_time = self.retry_backoff * (2 ** attempt)
                logger.debug(f"Retrying in {backoff_time}s...")
                time.sleep(backoff_time)

        logger.error(f"All {self.retry_attempts} attempts failed. Last error: {last_error}")
        return APIResponse(success=False, error=last_error)

    def query_transactions(self, tags: Sequence[Tag], first: int = 100, after: Optional[str] = None, order: str = "DESC") -> APIResponse:
        """
        Fetch one page of transactions matching every tag.

        On success `data` is the GraphQL `data` object
        (`{"transactions": {"edges": [...], "pageInfo": {...}}}`).
        """
        query, variables = build_transactions_query(tags, first=first, after=after, order=order)
        return self._make_request(query, variables)


class GatewayClient:
    """Client for gateway GETs (mutable snapshot documents)"""

    def __init__(self, endpoint: str, timeout: int = 30, retry_attempts: int = 3, retry_backoff: float = 1.0):
        self.endpoint = endpoint.rstrip('/')
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff
        self.session = requests.Session()
        self.session.headers.update({
            'Accept': 'application/json',
            'User-Agent': USER_AGENT,
        })

    def _make_request(self, path: str) -> APIResponse:
        """
        GET `path` with retry logic; redirects are followed.

        Returns:
            APIResponse with success status and decoded JSON/error
        """
        url = f"{self.endpoint}/{path.lstrip('/')}"
        last_error = None
        status_code = None

        for attempt in range(self.retry_attempts):
            try:
                logger.debug(f"Making gateway GET request to {path} (attempt {attempt + 1}/{self.retry_attempts})")
                response = self.session.get(url, timeout=self.timeout, allow_redirects=True)
                status_code = response.status_code

                if response.status_code == 200:
                    try:
                        return APIResponse(success=True, data=response.json(), status_code=200)
                    except ValueError as e:
                        error_msg = f"Invalid JSON response: {e}"
                        logger.error(error_msg)
                        return APIResponse(success=False, error=error_msg, status_code=200)

                error_msg = f"HTTP {response.status_code}: {response.text[:200]}"
                logger.warning(f"Gateway request failed: {error_msg}")
                last_error = error_msg
                if response.status_code == 404:
                    break

            except requests.exceptions.Timeout:
                last_error = f"Request timeout after {self.timeout}s"
                logger.warning(f"Attempt {attempt + 1} timed out")

            except requests.exceptions.ConnectionError as e:
                last_error = f"Connection error: {str(e)}"
                logger.warning(f"Attempt {attempt + 1} connection failed")

            if attempt < self.retry_attempts - 1:
                backoff_time = self.retry_backoff * (2 ** attempt)
                logger.debug(f"Retrying in {backoff_time}s...")
                time.sleep(backoff_time)

        logger.error(f"Gateway request to {path} failed. Last error: {last_error}")
        return APIResponse(success=False, error=last_error, status_code=status_code)

    def get_mutable(self, address: str) -> APIResponse:
        """Fetch the latest document behind a mutable address"""
        return self._make_request(f"mutable/{address}")


def extract_page(data: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Pull `{edges, hasNextPage}` out of a transactions response.

    Returns None when the payload lacks `transactions`.
    """
    if not isinstance(data, dict):
        return None
    txs = data.get('transactions')
    if not isinstance(txs, dict):
        return None
    edges: List[Dict[str, Any]] = txs.get('edges') or []
    page_info = txs.get('pageInfo') or {}
    return {'edges': edges, 'hasNextPage': bool(page_info.get('hasNextPage', False))}
