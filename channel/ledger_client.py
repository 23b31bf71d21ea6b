"""
Ledger service HTTP client for FlashPoint.

Handles ledger connections, timeouts and retries.
Contains no negotiation logic - purely API interaction.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional

import requests

from config.settings import LEDGER_MAX_RETRIES, LEDGER_TIMEOUT_SECONDS
from utils.errors import ExternalServiceFailure
from .models import ChannelProposal

logger = logging.getLogger(__name__)


class LedgerClient:
    """
    Client for the off-chain ledger that opens co-signed channels.

    Connection errors, timeouts and 5xx responses are retried with
    backoff. An explicit rejection (4xx) is never retried.
    """

    def __init__(self, base_url: Optional[str],
                 timeout: float = LEDGER_TIMEOUT_SECONDS,
                 max_retries: int = LEDGER_MAX_RETRIES,
                 base_delay: float = 0.5,
                 session: Optional[requests.Session] = None,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Initialize the ledger client.

        Args:
            base_url: Ledger service root URL; None disables the client
            timeout: Per-request timeout in seconds
            max_retries: Extra attempts after the first one
            base_delay: Backoff base in seconds
            session: requests session to reuse
            sleep: Backoff sleep function
        """
        self.base_url = base_url.rstrip('/') if base_url else None
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.http = session or requests.Session()
        self.sleep = sleep

    def is_available(self) -> bool:
        """Probe the ledger's health endpoint."""
        if not self.base_url:
            return False
        try:
            response = self.http.get(f"{self.base_url}/health", timeout=self.timeout)
            return response.ok
        except requests.RequestException as e:
            logger.warning(f"Ledger health check failed: {e}")
            return False

    def submit_channel(self, proposal: ChannelProposal) -> str:
        """
        Submit a co-signed proposal and return the channel identifier.

        Raises:
            ExternalServiceFailure: On rejection, a malformed reply or
            when every attempt failed
        """
        if not self.base_url:
            raise ExternalServiceFailure("Ledger URL not configured")

        body = proposal.to_wire()
        last_error = None

        for attempt in range(self.max_retries + 1):
            try:
                logger.debug(f"Ledger submit attempt {attempt + 1}/{self.max_retries + 1}")
                response = self.http.post(f"{self.base_url}/channels", json=body, timeout=self.timeout)

                if response.status_code >= 500:
                    last_error = ExternalServiceFailure(f"Ledger error {response.status_code}")
                elif not response.ok:
                    # Don't retry explicit rejections
                    raise ExternalServiceFailure(
                        f"Ledger rejected channel ({response.status_code}): {response.text[:200]}"
                    )
                else:
                    return self._parse_channel_id(response)

            except (requests.ConnectionError, requests.Timeout) as e:
                last_error = ExternalServiceFailure(f"Ledger unreachable: {e}")

            if attempt < self.max_retries:
                delay = self.base_delay * (2 ** attempt)
                logger.warning(f"{last_error}, retrying in {delay}s")
                self.sleep(delay)

        error_msg = f"Failed after {self.max_retries + 1} attempts: {last_error}"
        logger.error(error_msg)
        raise ExternalServiceFailure(error_msg)

    @staticmethod
    def _parse_channel_id(response: requests.Response) -> str:
        try:
            data: Dict[str, Any] = response.json()
        except ValueError as e:
            raise ExternalServiceFailure(f"Ledger returned invalid JSON: {e}") from e

        channel_id = None
        if isinstance(data, dict):
            channel_id = data.get('channel_id') or data.get('app_session_id') or data.get('appSessionId')
        if not channel_id or not isinstance(channel_id, str):
            raise ExternalServiceFailure("Ledger reply has no channel id")
        return channel_id
