"""
Startup configuration validation module.

This module provides startup-time validation for critical configuration
to catch misconfigurations early (fail-fast) rather than halfway through
a webhook delivery or a bulk guest import.

Usage:
    from shared.startup_validator import validate_startup_config, StartupValidationError

    def main():
        try:
            validate_startup_config()
        except StartupValidationError as e:
            logger.critical(f"Startup blocked: {e}")
            sys.exit(1)
"""

import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from shared.config import Settings, get_settings

logger = logging.getLogger(__name__)

ASYNC_DRIVERS = {"asyncpg", "aiosqlite", "psycopg", "psycopg_async"}

ISOLATION_LEVELS = {
    "READ COMMITTED",
    "REPEATABLE READ",
    "SERIALIZABLE",
}


class StartupValidationError(Exception):
    """Raised when critical startup validation fails."""

    pass


def validate_startup_config(settings: Settings | None = None) -> dict[str, bool]:
    """
    Validate all critical configuration at startup.

    Performs tiered validation:
    - TIER 1 (CRITICAL): Block startup if any fail
    - TIER 2 (IMPORTANT): Warn but allow startup

    Args:
        settings: Settings to validate (default: cached application settings)

    Returns:
        dict of {check_name: passed} for all validations

    Raises:
        StartupValidationError: If any CRITICAL check fails
    """
    settings = settings or get_settings()
    results: dict[str, bool] = {}
    critical_failures: list[str] = []

    # =========================================================================
    # TIER 1: CRITICAL (block startup if any fail)
    # =========================================================================

    # 1. DATABASE_URL parses and uses an async driver
    try:
        url = make_url(settings.DATABASE_URL)
        # Driver must be explicit: "postgresql://" resolves to a sync default
        _, _, driver = url.drivername.partition("+")
        if driver not in ASYNC_DRIVERS:
            named = driver or "dialect default"
            critical_failures.append(
                f"DATABASE_URL uses driver '{named}' - an async driver is required "
                f"({', '.join(sorted(ASYNC_DRIVERS))})"
            )
            results["database_url"] = False
        else:
            results["database_url"] = True
            logger.info(f"  [OK] Database driver: {url.get_backend_name()}+{driver}")
    except ArgumentError as e:
        critical_failures.append(f"DATABASE_URL is not a valid SQLAlchemy URL: {e}")
        results["database_url"] = False

    # 2. TIMEZONE is a valid IANA name
    try:
        ZoneInfo(settings.TIMEZONE)
        results["timezone"] = True
        logger.info(f"  [OK] Timezone: {settings.TIMEZONE}")
    except (ZoneInfoNotFoundError, ValueError):
        critical_failures.append(f"TIMEZONE is not a valid IANA timezone: {settings.TIMEZONE}")
        results["timezone"] = False

    # 3. Transaction retry budget
    if settings.TRANSACTION_MAX_RETRIES < 1:
        critical_failures.append("TRANSACTION_MAX_RETRIES must be at least 1")
        results["transaction_retries"] = False
    else:
        results["transaction_retries"] = True

    # =========================================================================
    # TIER 2: IMPORTANT (warn but allow startup)
    # =========================================================================

    isolation = settings.TRANSACTION_ISOLATION_LEVEL
    if isolation and isolation.upper() not in ISOLATION_LEVELS:
        logger.warning(
            f"  [WARN] TRANSACTION_ISOLATION_LEVEL '{isolation}' is not one of "
            f"{sorted(ISOLATION_LEVELS)} - the database may reject it"
        )
        results["isolation_level"] = False
    else:
        results["isolation_level"] = True

    if not 0 <= settings.HOTEL_CHECK_IN_HOUR <= 23:
        logger.warning(
            f"  [WARN] HOTEL_CHECK_IN_HOUR={settings.HOTEL_CHECK_IN_HOUR} out of range, "
            "schedule derivation will clamp it"
        )
        results["hotel_check_in_hour"] = False
    else:
        results["hotel_check_in_hour"] = True

    if settings.LEDGER_MAX_RETRIES < 0:
        logger.warning("  [WARN] LEDGER_MAX_RETRIES is negative, failed events will never be retried")
        results["ledger_retries"] = False
    else:
        results["ledger_retries"] = True

    if critical_failures:
        message = "; ".join(critical_failures)
        logger.critical(f"Startup configuration invalid: {message}")
        raise StartupValidationError(message)

    logger.info("Startup configuration validation passed")
    return results
