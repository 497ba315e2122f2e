from app.src.db import UserToken
from app.src import openobserve
from app.src.enums import AppID
from app.src.schemas import RequestInfo


def logEvent(token: UserToken, requestInfo: RequestInfo, data: dict) -> None:
    """
    Record an audit event for a change made through the API.

    The changed record is shipped together with who made the change
    (`_user_id`, `_token_id`, `_platform_type`), from where
    (`_client_host`, `_user_agent`) and through which audience
    application (`_app_id`, `_app`).
    """
    logDetails = {
        "_method": requestInfo.method,
        "_path": requestInfo.path,
        "_app_id": requestInfo.app_id,
        "_app": AppID(requestInfo.app_id).name,
        "_client_host": requestInfo.client_host,
        "_user_agent": requestInfo.user_agent,
        "_user_id": token.user_id,
        "_token_id": token.id,
        "_platform_type": token.platform_type,
    }
    logDetails.update(data)
    openobserve.logEvent(logDetails)
