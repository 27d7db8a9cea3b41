"""REST client for the entitlement (ACP) service."""

from typing import Optional

import requests
from oslo_log import log as logging
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from anf_storage import exceptions

LOG = logging.getLogger(__name__)

FEATURE_INFLIGHT_ENCRYPTION = "inflightEncryption"

ENTITLEMENTS_PATH = "/acp/v1/entitlements"


class AcpClient:
    """Checks whether gated features are entitled.

    A disabled client denies every feature, so gated workflows fail
    until the service is configured.
    """

    def __init__(
        self,
        endpoint: Optional[str],
        enabled: bool = False,
        timeout: int = 10,
        retry_count: int = 3,
    ):
        """Initialize the entitlement client.

        Args:
            endpoint: Service URL (e.g., http://127.0.0.1:8100)
            enabled: Whether the entitlement service is in use
            timeout: HTTP request timeout in seconds
            retry_count: Number of retries for failed GET requests
        """
        self.base_url = (endpoint or "").rstrip("/")
        self.enabled = enabled
        self.timeout = timeout

        self.session = requests.Session()

        # Only GET requests are issued, all of them safe to retry
        retry_strategy = Retry(
            total=retry_count,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def is_feature_enabled(self, feature: str) -> None:
        """Check that a feature is entitled.

        Raises:
            EntitlementError: If the client is disabled, the service denies
                the feature or the service cannot be reached
        """
        if not self.enabled:
            raise exceptions.EntitlementError(
                feature=feature, details="the entitlement service is not enabled"
            )
        if not self.base_url:
            raise exceptions.EntitlementError(
                feature=feature, details="no entitlement service endpoint configured"
            )

        url = self.base_url + ENTITLEMENTS_PATH
        try:
            response = self.session.get(url, params={"feature": feature}, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise exceptions.EntitlementError(
                feature=feature,
                details=f"entitlement request timed out after {self.timeout}s: {e}",
            )
        except requests.exceptions.RequestException as e:
            raise exceptions.EntitlementError(
                feature=feature, details=f"entitlement request failed: {e}"
            )

        if not 200 <= response.status_code < 300:
            try:
                error_data = response.json()
            except ValueError:
                error_data = None
            error_msg = None
            if isinstance(error_data, dict):
                error_msg = error_data.get("error")
            error_msg = error_msg or response.text
            raise exceptions.EntitlementError(
                feature=feature,
                details=f"entitlement service returned {response.status_code}: {error_msg}",
            )

        LOG.debug("Feature %s is entitled", feature)

    def close(self):
        """Close the HTTP session."""
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
