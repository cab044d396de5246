"""
DDL execution against the target warehouse.

Statements run sequentially on one connection, one cursor execute and one
commit per statement. The first failure stops the batch; statements that ran
before it stay applied.

Connections are opened with pyodbc. When the connection string carries no
credentials an Azure AD access token for the SQL scope is passed as the
``SQL_COPT_SS_ACCESS_TOKEN`` connection attribute.
"""

import logging
import re
import struct
import threading
from itertools import chain, repeat
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple, Union

from azure.core.credentials import TokenCredential
from tqdm import tqdm

from ..auth import CredentialFactory, TokenManager
from ..config import WarehouseOptions
from ..constants import APIConfig, WarehouseDefaults
from ..errors import ExecutionError
from .models import SQLStatement, StatementIntent, quote_identifier, quote_literal

logger = logging.getLogger(__name__)

_CREDENTIAL_KEYS = re.compile(r"(^|;)\s*(uid|user id|pwd|password|authentication|trusted_connection)\s*=", re.IGNORECASE)


def encode_access_token(token: str) -> bytes:
    """Pack an access token the way the ODBC driver expects it."""
    token_as_bytes = bytes(token, "UTF-8")
    encoded_bytes = bytes(chain.from_iterable(zip(token_as_bytes, repeat(0))))
    return struct.pack("<i", len(encoded_bytes)) + encoded_bytes


def has_credentials(connection_string: str) -> bool:
    """Check whether a connection string authenticates on its own."""
    return bool(_CREDENTIAL_KEYS.search(connection_string))


def connect(
    connection_string: str,
    tenant_id: Optional[str] = None,
    credential: Optional[TokenCredential] = None,
) -> Any:
    """
    Open a DB-API connection to the warehouse.

    Args:
        connection_string: ODBC connection string.
        tenant_id: Tenant for the SQL access token.
        credential: Credential to take the token from; a chained managed
            identity / default credential when None.

    Returns:
        An open pyodbc connection (autocommit off).

    Raises:
        AuthenticationError: If a token cannot be acquired.
        pyodbc.Error: If the connection fails.
    """
    # pyodbc loads the ODBC driver manager on import
    import pyodbc

    if has_credentials(connection_string):
        logger.debug("Connecting with credentials from the connection string")
        return pyodbc.connect(connection_string, autocommit=False)

    if credential is None:
        credential = CredentialFactory.create_credential(tenant_id)
    token = TokenManager(credential, APIConfig.SQL_SCOPE, tenant_id=tenant_id).get_access_token()

    attrs_before = {APIConfig.SQL_COPT_SS_ACCESS_TOKEN: encode_access_token(token)}
    logger.debug("Connecting with an Azure AD access token")
    return pyodbc.connect(connection_string, autocommit=False, attrs_before=attrs_before)


def execute(
    statements: Iterable[Union[SQLStatement, str]],
    connection: Any,
    tenant_id: Optional[str] = None,
    progress: bool = False,
) -> int:
    """
    Execute statements in order.

    Args:
        statements: Statements (or raw SQL strings).
        connection: Open DB-API connection.
        tenant_id: Tenant the batch belongs to (logging only).
        progress: Show a progress bar.

    Returns:
        Number of statements executed.

    Raises:
        ExecutionError: On the first failing statement.
    """
    items: List[Union[SQLStatement, str]] = list(statements)
    logger.info(f"Executing {len(items)} statements" + (f" for tenant {tenant_id}" if tenant_id else ""))

    cursor = connection.cursor()
    try:
        for index, statement in enumerate(tqdm(items, desc="Executing DDL", unit="stmt", disable=not progress)):
            text = statement.text if isinstance(statement, SQLStatement) else statement
            logger.debug(f"Statement {index}: {text.splitlines()[0] if text else ''}")
            try:
                cursor.execute(text)
                connection.commit()
            except Exception as e:
                logger.error(f"Statement {index} failed: {e}")
                raise ExecutionError(index, e, statement=text) from e
    finally:
        cursor.close()

    return len(items)


# =============================================================================
# Database setup
# =============================================================================

def setup_statements(options: WarehouseOptions) -> List[SQLStatement]:
    """Idempotent provisioning statements for a target database."""
    schema = options.schema
    credential = WarehouseDefaults.SCOPED_CREDENTIAL
    texts = [
        f"IF NOT EXISTS (SELECT * FROM sys.schemas WHERE name = {quote_literal(schema)})\n"
        f"EXEC({quote_literal('CREATE SCHEMA ' + quote_identifier(schema))})",
        "IF NOT EXISTS (SELECT * FROM sys.symmetric_keys WHERE name = '##MS_DatabaseMasterKey##')\n"
        "CREATE MASTER KEY",
        f"IF NOT EXISTS (SELECT * FROM sys.database_scoped_credentials WHERE name = {quote_literal(credential)})\n"
        f"CREATE DATABASE SCOPED CREDENTIAL {quote_identifier(credential)} WITH IDENTITY = 'Managed Identity'",
    ]
    return [SQLStatement(StatementIntent.SETUP, text) for text in texts]


class SetupRegistry:
    """Thread-safe record of (connection string, tenant) pairs already provisioned."""

    def __init__(self):
        self._lock = threading.Lock()
        self._key_locks: Dict[Tuple[str, Optional[str]], threading.Lock] = {}
        self._done: Set[Tuple[str, Optional[str]]] = set()

    def _key_lock(self, key: Tuple[str, Optional[str]]) -> threading.Lock:
        with self._lock:
            return self._key_locks.setdefault(key, threading.Lock())

    def is_done(self, key: Tuple[str, Optional[str]]) -> bool:
        with self._lock:
            return key in self._done

    def run_once(self, key: Tuple[str, Optional[str]], action: Callable[[], None]) -> bool:
        """
        Run ``action`` unless ``key`` already succeeded. Returns True if it ran.

        Callers for the same key wait for each other; other keys proceed.
        """
        with self._key_lock(key):
            if self.is_done(key):
                return False
            action()
            with self._lock:
                self._done.add(key)
            return True

    def clear(self) -> None:
        with self._lock:
            self._done.clear()
            self._key_locks.clear()


_registry = SetupRegistry()


def db_setup(
    options: WarehouseOptions,
    tenant_id: Optional[str],
    connection: Any,
    registry: Optional[SetupRegistry] = None,
) -> bool:
    """
    Provision schema, master key and scoped credential once per process.

    Returns:
        True if the setup statements ran, False if already done.

    Raises:
        ExecutionError: If a setup statement fails (the pair is not recorded).
    """
    registry = registry or _registry
    key = (options.target_db_connection_string or "", tenant_id)

    ran = registry.run_once(key, lambda: execute(setup_statements(options), connection, tenant_id))
    if ran:
        logger.info(f"Database setup completed for schema {options.schema}")
    else:
        logger.debug("Database setup already done for this target")
    return ran
