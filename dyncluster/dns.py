"""Registration of node host names with the DNS service."""

from __future__ import annotations

import logging
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from dyncluster.errors import RegistrationFailure

logger = logging.getLogger(__name__)


class DnsRegistrar:
    """
    Client for the DNS registration service.

    Records are written with ``PUT /<zone>/<hostname>`` and a body of
    ``{"ips": ["<ip>"]}``; the service answers 200 on success. Connection
    errors and 5xx answers are retried with exponential backoff.
    """

    def __init__(
        self,
        host: str,
        port: int = 80,
        zone: str = "couchbase.com",
        retries: int = 3,
        backoff_factor: float = 0.5,
        timeout_s: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.zone = zone.strip("/")
        self.timeout_s = timeout_s

        if session is None:
            session = requests.Session()
            retry = Retry(
                total=retries,
                backoff_factor=backoff_factor,
                status_forcelist=(500, 502, 503, 504),
                allowed_methods=frozenset(["PUT"]),
                raise_on_status=False,
            )
            session.mount("http://", HTTPAdapter(max_retries=retry))
        self.session = session

    def url_for(self, hostname: str) -> str:
        return f"http://{self.host}:{self.port}/{self.zone}/{hostname}"

    def register(self, hostname: str, ip: str) -> str:
        """
        Point ``hostname`` at ``ip``.

        Returns:
            Response body of the registration service

        Raises:
            RegistrationFailure: If the service is unreachable or does not answer 200
        """
        logger.info(f"Registering {ip} => {hostname} on {self.host}")
        try:
            response = self.session.put(
                self.url_for(hostname),
                json={"ips": [ip]},
                timeout=self.timeout_s,
            )
        except requests.RequestException as e:
            raise RegistrationFailure(hostname, ip, str(e)) from e

        if response.status_code != 200:
            raise RegistrationFailure(
                hostname, ip, f"unexpected status {response.status_code}", body=response.text
            )
        return response.text
