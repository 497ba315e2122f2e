import base64, json, requests
from requests import Response

from app.src.constants import (
    OPENOBSERVE_ENABLED,
    OPENOBSERVE_HOST,
    OPENOBSERVE_ORG,
    OPENOBSERVE_PASSWORD,
    OPENOBSERVE_PORT,
    OPENOBSERVE_PROTOCOL,
    OPENOBSERVE_STREAM,
    OPENOBSERVE_TIMEOUT,
    OPENOBSERVE_USERNAME,
)

credentials = base64.b64encode(
    bytes(OPENOBSERVE_USERNAME + ":" + OPENOBSERVE_PASSWORD, "utf-8")
).decode("utf-8")
headers = {"Content-type": "application/json", "Authorization": "Basic " + credentials}

openobserveHost = f"{OPENOBSERVE_PROTOCOL}://{OPENOBSERVE_HOST}:{OPENOBSERVE_PORT}"
openobserveURL = f"{openobserveHost}/api/{OPENOBSERVE_ORG}/{OPENOBSERVE_STREAM}/_json"


def logEvent(eventData: dict) -> Response | None:
    """
    Ship one audit event to the OpenObserve stream of the server.

    Decimal amounts and timestamps are sent as strings. Nothing is sent
    when `OPENOBSERVE_ENABLED` is false, which is how tests and local
    development run.

    Example event:
        {
            "_method": "POST",
            "_path": "/client/order",
            "_app_id": 2,
            "_user_id": 7,
            "order_number": "FT-20250101-1a2b3c4d",
            "total_amount": "150.00"
        }
    """
    if not OPENOBSERVE_ENABLED:
        return None
    return requests.post(
        openobserveURL,
        headers=headers,
        data=json.dumps([eventData], default=str),
        timeout=OPENOBSERVE_TIMEOUT,
    )
