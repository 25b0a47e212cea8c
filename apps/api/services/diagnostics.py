"""
Configuration and connectivity reports for troubleshooting provider setup.

Reports describe whether a credential is present and how long it is. They
never include credential values or prefixes.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config import PROVIDER_CREDENTIAL_FIELDS, settings
from models.social_account import SocialAccount
from services.connectors.providers import default_redirect_uri, get_connector_provider
from services.connectors.types import ProviderRequestError, TokenExchangeError


logger = logging.getLogger(__name__)

TIKTOK_CLIENT_KEY_LENGTH = 18
TIKTOK_CLIENT_SECRET_LENGTH = 40
DIAGNOSTIC_CODE = "diagnostic_invalid_code"
TIKTOK_PORTAL_URL = "https://developers.tiktok.com/apps"
TIKTOK_DOCS_URL = "https://developers.tiktok.com/doc/login-kit-web"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def secret_presence(value: Optional[str], expected_length: Optional[int] = None) -> Dict[str, Any]:
    value = (value or "").strip()
    report: Dict[str, Any] = {"present": bool(value), "length": len(value)}
    if expected_length is not None:
        report["expected_length"] = expected_length
        report["valid"] = len(value) == expected_length
    return report


def _tiktok_credentials() -> Dict[str, Dict[str, Any]]:
    return {
        "client_key": secret_presence(settings.TIKTOK_CLIENT_KEY, TIKTOK_CLIENT_KEY_LENGTH),
        "client_secret": secret_presence(settings.TIKTOK_CLIENT_SECRET, TIKTOK_CLIENT_SECRET_LENGTH),
    }


def _credential_issues(credentials: Dict[str, Dict[str, Any]]) -> tuple:
    issues: List[str] = []
    suggestions: List[str] = []
    names = {"client_key": "TIKTOK_CLIENT_KEY", "client_secret": "TIKTOK_CLIENT_SECRET"}
    for field_name, report in credentials.items():
        env_name = names[field_name]
        if not report["present"]:
            issues.append(f"{env_name} is not set")
            suggestions.append(f"Set {env_name} in your environment variables")
        elif not report["valid"]:
            issues.append(f"{env_name} length is {report['length']}, expected {report['expected_length']}")
            suggestions.append("Verify the value in the TikTok Developer Portal")
    return issues, suggestions


async def probe_token_endpoint(platform: str) -> Dict[str, Any]:
    """
    Exchange a deliberately invalid code to check reachability and credentials.

    A reachable endpoint with valid app credentials answers ``invalid_grant``;
    ``invalid_client`` means the credentials were rejected.
    """
    provider = get_connector_provider(platform)
    if not provider.configured:
        return {"reachable": None, "skipped": True, "reason": f"{provider.title} client credentials not configured"}

    try:
        result = await provider.exchange_code(DIAGNOSTIC_CODE, default_redirect_uri(platform))
    except ProviderRequestError as exc:
        return {"reachable": False, "error": str(exc)}

    if isinstance(result, TokenExchangeError):
        return {
            "reachable": True,
            "status_code": result.status_code,
            "provider_error": result.provider_error,
            "error_kind": result.kind.value,
            "credentials_accepted": result.kind.value != "invalid_client",
        }

    logger.warning("%s accepted a diagnostic code", provider.title)
    return {"reachable": True, "status_code": 200, "provider_error": None, "credentials_accepted": True}


async def tiktok_validate_app() -> Dict[str, Any]:
    credentials = _tiktok_credentials()
    provider = get_connector_provider("tiktok")
    issues, suggestions = _credential_issues(credentials)

    connectivity = await probe_token_endpoint("tiktok")
    if connectivity.get("reachable") is False:
        issues.append("Cannot reach TikTok API")
        suggestions.append("Check internet connectivity and TikTok API status")
    if connectivity.get("error_kind") == "invalid_client":
        issues.append("TikTok rejected the client credentials")
        suggestions.append("Double-check the client key and secret in the TikTok Developer Portal")

    ready = not issues
    return {
        "status": "READY" if ready else "ISSUES_FOUND",
        "timestamp": _now(),
        "environment": credentials,
        "configuration": {
            "redirect_uri": default_redirect_uri("tiktok"),
            "scopes": provider.scope_separator.join(provider.scopes),
            "auth_endpoint": provider.authorize_url,
            "token_endpoint": provider.token_url,
        },
        "api_connectivity": connectivity,
        "issues": issues,
        "suggestions": suggestions,
        "next_steps": [
            "Try connecting your TikTok account",
            "If the connection fails with invalid_client, check the app approval status",
        ] if ready else [
            "Fix the identified configuration issues",
            "Ensure Login Kit for Web is enabled for the app",
            "Make sure the redirect URI matches exactly",
        ],
        "developer_portal_url": TIKTOK_PORTAL_URL,
        "documentation_url": TIKTOK_DOCS_URL,
    }


def tiktok_app_status() -> Dict[str, Any]:
    redirect_uri = default_redirect_uri("tiktok")
    return {
        "app": {
            "client_key": secret_presence(settings.TIKTOK_CLIENT_KEY, TIKTOK_CLIENT_KEY_LENGTH),
            "developer_portal_url": TIKTOK_PORTAL_URL,
        },
        "access_denied": {
            "issue": 'TikTok OAuth returned "Access Denied"',
            "most_likely_cause": "App not approved for OAuth authentication",
            "actions": [
                f"Open the TikTok Developer Portal: {TIKTOK_PORTAL_URL}",
                "Check the app status (Draft, Under Review or Approved)",
                'Ensure "Login Kit for Web" is enabled as a product',
                f"Verify the redirect URI: {redirect_uri}",
            ],
        },
        "checklist": [
            'App must be in "Approved" status',
            "Login Kit for Web product must be enabled",
            f"Redirect URI must exactly match: {redirect_uri}",
            "Scopes user.info.basic and user.info.profile must be approved",
        ],
    }


async def tiktok_debug_live() -> Dict[str, Any]:
    credentials = _tiktok_credentials()
    provider = get_connector_provider("tiktok")
    issues, suggestions = _credential_issues(credentials)
    warnings: List[str] = []

    test_oauth_url = None
    if provider.configured:
        test_oauth_url = provider.build_authorization_url(default_redirect_uri("tiktok"), "debug_test")

    api_test = await probe_token_endpoint("tiktok")
    if api_test.get("reachable") is False:
        issues.append("Failed to connect to TikTok API")
    elif api_test.get("error_kind") == "invalid_client":
        issues.append('TikTok API returned "invalid_client", credentials may be incorrect')
        suggestions.append("Double-check the client key and secret in the TikTok Developer Portal")
    elif api_test.get("error_kind") == "invalid_grant":
        warnings.append('API connectivity test successful (expected "invalid_grant" for the test code)')

    return {
        "status": "READY" if not issues else "NEEDS_ATTENTION",
        "timestamp": _now(),
        "environment": credentials,
        "oauth_configuration": {
            "auth_endpoint": provider.authorize_url,
            "token_endpoint": provider.token_url,
            "redirect_uri": default_redirect_uri("tiktok"),
            "scopes": list(provider.scopes),
            "response_type": "code",
            "grant_type": "authorization_code",
        },
        "test_oauth_url": test_oauth_url,
        "api_test": api_test,
        "diagnostics": {"issues": issues, "warnings": warnings, "suggestions": suggestions},
        "developer_portal_url": TIKTOK_PORTAL_URL,
        "documentation_url": TIKTOK_DOCS_URL,
    }


async def tiktok_env_test() -> Dict[str, Any]:
    return {
        "environment": _tiktok_credentials(),
        "token_request": {
            "url": get_connector_provider("tiktok").token_url,
            "method": "POST",
            "redirect_uri": default_redirect_uri("tiktok"),
        },
        "result": await probe_token_endpoint("tiktok"),
    }


def debug_env() -> Dict[str, Any]:
    environment: Dict[str, Any] = {}
    for fields in PROVIDER_CREDENTIAL_FIELDS.values():
        for field_name in fields:
            environment[field_name] = secret_presence(getattr(settings, field_name))
    return {
        "timestamp": _now(),
        "environment": environment,
        "diagnostic_endpoints_enabled": settings.ENABLE_DIAGNOSTIC_ENDPOINTS,
        "app_base_url": settings.APP_BASE_URL,
    }


def _table_columns(sync_conn, table_name: str) -> Optional[List[str]]:
    inspector = inspect(sync_conn)
    if not inspector.has_table(table_name):
        return None
    return [column["name"] for column in inspector.get_columns(table_name)]


async def check_db_schema(db: AsyncSession) -> Dict[str, Any]:
    table_name = SocialAccount.__tablename__
    expected = [column.name for column in SocialAccount.__table__.columns]
    report: Dict[str, Any] = {
        "timestamp": _now(),
        "table": table_name,
        "table_exists": False,
        "table_accessible": False,
        "missing_columns": [],
        "sample_data": [],
        "error": None,
    }

    try:
        connection = await db.connection()
        columns = await connection.run_sync(_table_columns, table_name)
        if columns is None:
            report["recommendations"] = [f"Create the {table_name} table"]
            return report

        report["table_exists"] = True
        report["missing_columns"] = [name for name in expected if name not in columns]

        result = await db.execute(
            select(SocialAccount.user_id, SocialAccount.platform, SocialAccount.created_at).limit(3)
        )
        report["sample_data"] = [
            {
                "user_id": row.user_id,
                "platform": row.platform,
                "created_at": row.created_at.isoformat() if row.created_at else None,
            }
            for row in result
        ]
        report["table_accessible"] = True
    except SQLAlchemyError as exc:
        logger.warning("Schema check failed: %s", exc)
        report["error"] = str(exc)

    report["recommendations"] = [
        "Table exists" if report["table_exists"] else f"Create the {table_name} table",
        "Table accessible" if report["table_accessible"] else "Check database permissions",
        "Add missing columns" if report["missing_columns"] else "Columns match the model",
    ]
    return report
