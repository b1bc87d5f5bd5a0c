# utils/remote_control.py
"""Sends a control message to an already running instance"""

import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)


def send_control_message(message: Dict[str, Any], port: int = 61090,
                         timeout: float = 10) -> Optional[Dict[str, Any]]:
    """
    POSTs message to the local control endpoint.

    Returns:
        dict: response body, or None when the instance is not reachable
    """
    url = f"http://127.0.0.1:{port}/control"
    try:
        response = requests.post(
            url,
            json=message,
            timeout=timeout,
            proxies={"http": None, "https": None}  # Отключаем системный прокси для localhost
        )
        return response.json()
    except requests.ConnectionError:
        logger.error(f"❌ No running instance answers on {url}")
        return None
    except requests.Timeout:
        logger.error(f"❌ Control request timed out (>{timeout}s)")
        return None
    except (requests.RequestException, ValueError) as e:
        logger.error(f"❌ Control request error: {e}")
        return None
