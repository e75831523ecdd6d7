from app.src.db import AccessToken
from app.src import openobserve
from app.src.schemas import RequestInfo


def logEvent(token: AccessToken, requestInfo: RequestInfo, data: dict) -> None:
    """
    Log an event to OpenObserve with request and user context.

    Args:
        token (AccessToken): Authenticated user token.
        requestInfo (RequestInfo): Metadata about the current request.
        data (dict): Additional event-specific details to include in the log.

    Notes:
        - Automatically attaches `_app_id`, `_method`, `_path` and `_account_id`.
        - Keys of `data` win over the context keys on collision.
    """
    logDetails = {
        "_method": requestInfo.method,
        "_path": requestInfo.path,
        "_app_id": requestInfo.app_id,
        "_account_id": token.account_id,
    }
    logDetails.update(data)
    openobserve.logEvent(logDetails)
