"""Published list of public processing nodes."""

from typing import List, Optional

import requests
from requests.exceptions import RequestException

from domain.models import PublicNode
from shared.logging import get_logger

logger = get_logger(__name__)

PUBLIC_NODES_URL = "https://raw.githubusercontent.com/OpenDroneMap/CloudODM/master/public_nodes.json"


def fetch_public_nodes(
    session: Optional[requests.Session] = None,
    url: str = PUBLIC_NODES_URL,
    timeout: float = 30.0
) -> List[PublicNode]:
    """
    Download the public node list.

    Failures are logged and yield an empty list; a missing list only means
    no default node gets configured.
    """
    logger.debug("Retrieving public nodes...")
    session = session or requests.Session()

    try:
        response = session.get(url, timeout=timeout)
        response.raise_for_status()
        entries = response.json()
    except RequestException as e:
        logger.info(f"Cannot retrieve public nodes: {e}")
        return []
    except ValueError:
        logger.info(f"Invalid JSON content: {response.text[:200]}")
        return []

    nodes = []
    for entry in entries if isinstance(entries, list) else []:
        if not isinstance(entry, dict) or not entry.get('url'):
            continue
        nodes.append(PublicNode(
            url=entry['url'],
            maintainer=entry.get('maintainer', ''),
            company=entry.get('company', ''),
            website=entry.get('website', ''),
        ))
    return nodes
