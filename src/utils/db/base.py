"""
Core database infrastructure.

This module provides:
- DynamoDB table management
- Decorators for error handling, throttling retries and timing
- Common exceptions
- Ownership checks
"""

import os
import logging
import boto3
import uuid
import time
from typing import Dict, Any, Optional, Tuple, Callable, TypeVar
from functools import wraps
from botocore.exceptions import ClientError
from pydantic import ValidationError

logger = logging.getLogger(__name__)

T = TypeVar('T')

THROTTLING_ERROR_CODES = (
    'ProvisionedThroughputExceededException',
    'ThrottlingException',
    'RequestLimitExceeded'
)

# ============================================================================
# Exceptions
# ============================================================================

class NotAuthorized(Exception):
    """Raised when a user is not authorized to access a resource."""
    pass

class NotFound(Exception):
    """Raised when a requested resource is not found."""
    pass

class ConflictError(Exception):
    """Raised when a conditional write loses to a concurrent update."""
    pass


# ============================================================================
# Decorators
# ============================================================================

def dynamodb_operation(operation_name: Optional[str] = None):
    """
    Decorator for consistent DynamoDB error handling and logging.

    ClientErrors are logged with their error code and re-raised, pydantic
    ValidationErrors become ValueErrors. ConflictError and NotFound pass
    through untouched since callers handle them.

    Usage:
        @dynamodb_operation("get_recurring_transaction")
        def get_recurring_transaction(recurring_transaction_id: uuid.UUID) -> Optional[RecurringTransaction]:
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            op_name = operation_name or func.__name__
            try:
                logger.debug(f"Starting {op_name}")
                result = func(*args, **kwargs)
                logger.debug(f"Successfully completed {op_name}")
                return result
            except (ConflictError, NotFound, NotAuthorized):
                raise
            except ClientError as e:
                error_code = e.response.get('Error', {}).get('Code', 'Unknown')
                error_msg = e.response.get('Error', {}).get('Message', str(e))
                logger.error(
                    f"DynamoDB error in {op_name}: {error_code} - {error_msg}",
                    exc_info=True,
                    extra={
                        'operation': op_name,
                        'error_code': error_code,
                        'function': func.__name__
                    }
                )
                raise
            except ValidationError as e:
                logger.error(
                    f"Validation error in {op_name}: {str(e)}",
                    exc_info=True,
                    extra={'operation': op_name}
                )
                raise ValueError(f"Invalid data in {op_name}: {str(e)}")
            except Exception as e:
                logger.error(
                    f"Unexpected error in {op_name}: {str(e)}",
                    exc_info=True,
                    extra={'operation': op_name}
                )
                raise
        return wrapper
    return decorator


def retry_on_throttle(
    max_attempts: int = 3,
    base_delay: float = 0.1,
    max_delay: float = 5.0,
    exponential_base: float = 2,
    retry_on: Tuple[str, ...] = THROTTLING_ERROR_CODES
):
    """
    Decorator to retry DynamoDB operations on throttling with exponential backoff.

    delay = min(base_delay * exponential_base ** attempt, max_delay). Only
    the error codes in retry_on are retried; anything else is raised at once.

    Usage:
        @retry_on_throttle(max_attempts=5, base_delay=0.1)
        @dynamodb_operation("list_active_recurring_transactions")
        def list_active_recurring_transactions(...):
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            for attempt in range(max_attempts):
                try:
                    return func(*args, **kwargs)
                except ClientError as e:
                    error_code = e.response.get('Error', {}).get('Code', 'Unknown')
                    if error_code not in retry_on or attempt >= max_attempts - 1:
                        raise
                    delay = min(base_delay * (exponential_base ** attempt), max_delay)
                    logger.warning(
                        f"Throttled on {func.__name__} "
                        f"(attempt {attempt + 1}/{max_attempts}), "
                        f"retrying in {delay:.2f}s... "
                        f"Error: {error_code}"
                    )
                    time.sleep(delay)
            raise RuntimeError(f"Unexpected state in retry_on_throttle for {func.__name__}")
        return wrapper
    return decorator


def monitor_performance(
    operation_type: str = "db_operation",
    warn_threshold_ms: float = 1000,
    error_threshold_ms: float = 5000
):
    """
    Decorator to monitor and log operation performance.

    Debug below warn_threshold_ms, warning up to error_threshold_ms, error
    beyond. Timing is logged in a finally block and never changes the
    wrapped function's behavior.
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            start_time = time.time()
            try:
                return func(*args, **kwargs)
            finally:
                elapsed_ms = (time.time() - start_time) * 1000
                log_context = {
                    'operation': func.__name__,
                    'operation_type': operation_type,
                    'elapsed_ms': elapsed_ms
                }

                if elapsed_ms > error_threshold_ms:
                    logger.error(
                        f"SLOW OPERATION: {func.__name__} took {elapsed_ms:.2f}ms "
                        f"(threshold: {error_threshold_ms}ms)",
                        extra=log_context
                    )
                elif elapsed_ms > warn_threshold_ms:
                    logger.warning(
                        f"Slow operation: {func.__name__} took {elapsed_ms:.2f}ms "
                        f"(threshold: {warn_threshold_ms}ms)",
                        extra=log_context
                    )
                else:
                    logger.debug(
                        f"{func.__name__} completed in {elapsed_ms:.2f}ms",
                        extra=log_context
                    )
        return wrapper
    return decorator


# ============================================================================
# Table Management
# ============================================================================

class DynamoDBTables:
    """
    Singleton for managing DynamoDB table resources.

    Tables are created lazily on first access, with names looked up from
    environment variables.

    Usage:
        tables = DynamoDBTables()
        records = tables.recurring_transactions
    """
    _instance: Optional['DynamoDBTables'] = None

    # Table name to environment variable mapping
    TABLE_CONFIGS = {
        'transactions': 'TRANSACTIONS_TABLE',
        'accounts': 'ACCOUNTS_TABLE',
        'user_preferences': 'USER_PREFERENCES_TABLE',
        'recurring_transactions': 'RECURRING_TRANSACTIONS_TABLE',
    }

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if not self._initialized:
            self._dynamodb = boto3.resource('dynamodb')
            self._tables: Dict[str, Any] = {}
            self._initialized = True

    def _get_table(self, table_key: str) -> Optional[Any]:
        """Get table resource with lazy initialization."""
        if table_key not in self._tables:
            env_var_name = self.TABLE_CONFIGS.get(table_key)
            if not env_var_name:
                logger.error(f"Unknown table key: {table_key}")
                return None

            table_name = os.environ.get(env_var_name)
            if not table_name:
                logger.warning(
                    f"Environment variable {env_var_name} not set, "
                    f"table '{table_key}' unavailable"
                )
                return None

            self._tables[table_key] = self._dynamodb.Table(table_name)
            logger.info(f"Initialized table: {table_key} ({table_name})")

        return self._tables.get(table_key)

    @property
    def transactions(self) -> Any:
        return self._get_table('transactions')

    @property
    def accounts(self) -> Any:
        return self._get_table('accounts')

    @property
    def user_preferences(self) -> Any:
        return self._get_table('user_preferences')

    @property
    def recurring_transactions(self) -> Any:
        return self._get_table('recurring_transactions')

    def reinitialize(self):
        """Reinitialize DynamoDB resource (useful for testing)."""
        self._dynamodb = boto3.resource('dynamodb')
        self._tables.clear()
        logger.info("Reinitialized DynamoDB tables")


# Global instance
tables = DynamoDBTables()


def require_table(table: Optional[Any], table_key: str) -> Any:
    """Return the table or raise when its environment variable is unset."""
    if table is None:
        raise ConnectionError(f"DynamoDB table '{table_key}' is not configured")
    return table


def check_user_owns_resource(resource_user_id: str, requesting_user_id: str) -> None:
    """
    Check if a user owns a resource.

    Raises:
        NotAuthorized: If the user doesn't own the resource
    """
    if resource_user_id != requesting_user_id:
        raise NotAuthorized("Not authorized to access this resource")


def is_valid_uuid(value: Any) -> bool:
    if value is None:
        return False
    try:
        uuid.UUID(str(value))
        return True
    except (ValueError, AttributeError):
        return False
