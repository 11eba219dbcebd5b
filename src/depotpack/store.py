import logging

import requests

from depotpack import network
from depotpack.errors import SourceError

__all__ = ["fetch_app_name"]

logger = logging.getLogger(__name__)

APP_DETAILS_URL = "https://store.steampowered.com/api/appdetails"


def fetch_app_name(session: requests.Session, app_id: str) -> str | None:
    try:
        data = network.get_json(
            session, APP_DETAILS_URL, source="store", params={"appids": app_id, "l": "english"}
        )
    except (requests.RequestException, SourceError) as ex:
        logger.debug("No store details for %s: %s", app_id, ex)
        return None
    try:
        app = data[app_id]
        if not app["success"]:
            return None
        return app["data"]["name"]
    except (KeyError, TypeError):
        return None
