"""Lambda handler for financial report operations."""

import os
import logging
from typing import Dict, Any
import sys

# Add parent directory to path for imports
sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from shared.response import success_response, error_response, exception_response, options_response
from shared.exceptions import ScanBookException
from reports.service import ReportService

# Configure logging
logger = logging.getLogger()
logger.setLevel(os.environ.get('LOG_LEVEL', 'INFO'))

# Built on first use
report_service = None


def get_report_service() -> ReportService:
    global report_service
    if report_service is None:
        report_service = ReportService()
    return report_service


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for report operations.

    Handles:
    - GET /reports/financial?userId=...&period=all|current|YYYY-MM

    The owner is the userId query parameter (an accountant viewing a client),
    else the caller's own Cognito sub.

    Args:
        event: Lambda event
        context: Lambda context

    Returns:
        API Gateway response
    """
    try:
        logger.info(f"Request: {event.get('httpMethod')} {event.get('path')}")

        http_method = event.get('httpMethod')
        path = event.get('path')

        if http_method == 'OPTIONS':
            return options_response()

        if path == '/reports/financial' and http_method == 'GET':
            return handle_financial_report(event)
        else:
            return error_response("Route not found", status_code=404, error_kind="NotFoundError")

    except ScanBookException as e:
        logger.error(f"Application error: {str(e)}")
        return exception_response(e)
    except Exception as e:
        logger.error(f"Unexpected error: {str(e)}", exc_info=True)
        return error_response("Internal server error", status_code=500)


def handle_financial_report(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Handle financial report request.

    Args:
        event: Lambda event

    Returns:
        API Gateway response
    """
    query_params = event.get('queryStringParameters') or {}
    user_id = query_params.get('userId') or get_user_id(event)
    period = query_params.get('period')

    logger.info(f"Generating financial report for user {user_id}, period {period or 'all'}")

    report = get_report_service().get_report(user_id, period)

    return success_response(data=report)


def get_user_id(event: Dict[str, Any]) -> str:
    """
    Extract user ID from Cognito authorizer claims.

    Args:
        event: Lambda event

    Returns:
        User ID (sub claim)
    """
    request_context = event.get('requestContext') or {}
    authorizer = request_context.get('authorizer') or {}
    claims = authorizer.get('claims') or {}
    return claims.get('sub')
