# backend/services/ice_config.py

from __future__ import annotations

import logging

from core.config import Settings
from models.models import IceConfig, IceServer

logger = logging.getLogger(__name__)

DEFAULT_STUN_SERVERS = (
    "stun:stun.l.google.com:19302",
    "stun:stun.services.mozilla.com",
)


def build_ice_config(settings: Settings) -> IceConfig:
    """
    Build the ICE server list handed to browsers before they start signaling.

    Public STUN servers are always included. A TURN relay is added only when
    URL, username and password are all configured; the TLS variant is added
    on top when TURN_SERVER_TLS_URL is set as well.
    """
    servers = [IceServer(urls=url) for url in DEFAULT_STUN_SERVERS]

    if settings.TURN_SERVER_URL and settings.TURN_SERVER_USERNAME and settings.TURN_SERVER_PASSWORD:
        turn_urls = [settings.TURN_SERVER_URL]
        if settings.TURN_SERVER_TLS_URL:
            turn_urls.append(settings.TURN_SERVER_TLS_URL)

        for url in turn_urls:
            servers.append(
                IceServer(
                    urls=url,
                    username=settings.TURN_SERVER_USERNAME,
                    credential=settings.TURN_SERVER_PASSWORD,
                )
            )
        logger.debug("TURN server configuration loaded (%d relays)", len(turn_urls))
    else:
        logger.debug("TURN server credentials not found, using STUN-only configuration")

    return IceConfig(ice_servers=servers)
