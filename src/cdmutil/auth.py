"""
Authentication helpers for ADLS Gen2 and Synapse SQL endpoints.

Classes:
    TokenManager: Thread-safe access token management with caching
    CredentialFactory: Factory for creating Azure credentials
"""

import time
import logging
import threading
from typing import Optional, List

from azure.identity import (
    ManagedIdentityCredential,
    DefaultAzureCredential,
    ChainedTokenCredential,
)
from azure.core.credentials import TokenCredential

from .constants import APIConfig
from .errors import AuthenticationError

logger = logging.getLogger(__name__)


class CredentialFactory:
    """Factory for creating Azure credentials.

    Example:
        >>> credential = CredentialFactory.create_credential(tenant_id="...", msi_auth=True)
    """

    @staticmethod
    def create_credential(
        tenant_id: Optional[str] = None,
        msi_auth: bool = True,
    ) -> TokenCredential:
        """Create a chained token credential.

        The chain tries, in order:
        1. Managed identity (if msi_auth)
        2. Default Azure credential (environment, CLI, etc.)

        Args:
            tenant_id: Azure AD tenant ID
            msi_auth: Whether to put the managed identity first in the chain

        Returns:
            TokenCredential: Chained credential for authentication
        """
        credentials: List[TokenCredential] = []

        if msi_auth:
            logger.info("Adding managed identity credential to auth chain")
            credentials.append(ManagedIdentityCredential())

        # Empty strings cause Azure Identity to fail validation
        default_kwargs = {}
        if tenant_id:
            default_kwargs['additionally_allowed_tenants'] = [tenant_id]
        credentials.append(DefaultAzureCredential(**default_kwargs))

        return ChainedTokenCredential(*credentials)


class TokenManager:
    """Thread-safe access token manager with caching.

    Attributes:
        scope: The OAuth scope to request tokens for
        token_buffer_seconds: Buffer time before token expiry to refresh

    Example:
        >>> manager = TokenManager(credential, APIConfig.STORAGE_SCOPE)
        >>> headers = {"Authorization": f"Bearer {manager.get_access_token()}"}
    """

    def __init__(
        self,
        credential: TokenCredential,
        scope: str = APIConfig.STORAGE_SCOPE,
        tenant_id: Optional[str] = None,
        token_buffer_seconds: int = APIConfig.TOKEN_BUFFER_SECONDS,
    ):
        self._credential = credential
        self._scope = scope
        self._tenant_id = tenant_id
        self._token_buffer_seconds = token_buffer_seconds
        self._access_token: Optional[str] = None
        self._token_expires: float = 0
        self._token_lock = threading.RLock()

    @property
    def scope(self) -> str:
        return self._scope

    def get_access_token(self) -> str:
        """Get a valid access token, refreshing if necessary (thread-safe).

        Returns:
            Valid access token string

        Raises:
            AuthenticationError: If token acquisition fails
        """
        with self._token_lock:
            current_time = time.time()

            if self._access_token and current_time < self._token_expires - self._token_buffer_seconds:
                logger.debug("Using cached access token")
                return self._access_token

            logger.info(f"Acquiring access token for {self._scope}")

            kwargs = {}
            if self._tenant_id:
                kwargs['tenant_id'] = self._tenant_id
            try:
                token = self._credential.get_token(self._scope, **kwargs)
            except Exception as e:
                logger.error(f"Authentication failed: {e}")
                raise AuthenticationError(f"Failed to acquire access token: {e}") from e

            if not token or not token.token:
                raise AuthenticationError("Received empty token from credential provider")

            self._access_token = token.token
            self._token_expires = token.expires_on

            logger.info("Access token acquired successfully")
            return self._access_token

    def invalidate_token(self) -> None:
        """Invalidate the cached token to force refresh on next request."""
        with self._token_lock:
            self._access_token = None
            self._token_expires = 0
            logger.debug("Token cache invalidated")

    @property
    def is_token_valid(self) -> bool:
        """Check if the cached token is still valid."""
        with self._token_lock:
            if not self._access_token:
                return False
            return time.time() < self._token_expires - self._token_buffer_seconds
