from fastapi import Request, status

from app.utils.responses import ResponseBuilder


def handle_service_error(request: Request, error: Exception):
    """Centralized service error handler for routers. Errors read "ERROR_CODE: details"."""
    error_message = str(error)

    if error_message.startswith("INVALID_ARGUMENT:"):
        details = error_message.split(": ", 1)[1]
        return ResponseBuilder.error(
            request=request,
            message=details,
            error_code="INVALID_ARGUMENT",
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    if ":" in error_message:
        error_code = error_message.split(":", 1)[0]
    else:
        error_code = error_message

    error_status_mapping = {
        # Community task errors
        "COMMUNITY_NOT_FOUND": status.HTTP_404_NOT_FOUND,
        "COMMUNITY_TASK_NOT_FOUND": status.HTTP_404_NOT_FOUND,
        # Routine errors
        "ROUTINE_NOT_FOUND": status.HTTP_404_NOT_FOUND,
        # Webhook errors
        "WEBHOOK_NOT_FOUND": status.HTTP_404_NOT_FOUND,
        "INVALID_WEBHOOK_URL": status.HTTP_400_BAD_REQUEST,
    }

    status_code = error_status_mapping.get(
        error_code, status.HTTP_500_INTERNAL_SERVER_ERROR
    )

    error_messages = {
        "COMMUNITY_NOT_FOUND": "Community not found",
        "COMMUNITY_TASK_NOT_FOUND": "Community task not found",
        "ROUTINE_NOT_FOUND": "Routine not found",
        "WEBHOOK_NOT_FOUND": "No webhook configured for this user",
        "INVALID_WEBHOOK_URL": "Webhook URL is not valid",
    }

    message = error_messages.get(error_code, "An unexpected error occurred")

    return ResponseBuilder.error(
        request=request,
        message=message,
        error_code=error_code if error_code in error_status_mapping else "INTERNAL",
        status_code=status_code,
    )
