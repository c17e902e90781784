"""Slack notifications.

Failures (and run summaries) can be posted to a Slack incoming webhook
configured in the desired state settings.
"""

import time

import requests
from icecream import ic

from helmstate import __version__, console

_COLOR_OK = "#36a64f"
_COLOR_FAILURE = "#FF0000"


def _pretext(content: str, *, failure: bool) -> str:
    if not content:
        return "No actions to perform!"
    if failure:
        return "Failed to generate/execute a plan: "
    return "Here is what I have done: "


class SlackNotifier:
    """Posts JSON formatted messages to a Slack webhook.

    Attributes:
        timeout: Seconds to wait for the webhook to answer.

    """

    def __init__(self, timeout: float = 30) -> None:
        self.timeout = timeout

    def build_payload(self, message: str, *, failure: bool) -> dict:
        """Build the Slack attachment payload for ``message``."""
        return {
            "attachments": [
                {
                    "fallback": "helmstate results.",
                    "color": _COLOR_FAILURE if failure else _COLOR_OK,
                    "pretext": _pretext(message, failure=failure),
                    "title": message,
                    "footer": f"helmstate {__version__}",
                    "ts": int(time.time()),
                }
            ]
        }

    def notify(self, message: str, url: str, *, failure: bool) -> bool:
        """Send ``message`` to the webhook at ``url``.

        Args:
            message: The text to post.
            url: The Slack webhook URL.
            failure: Whether the message reports a failure.

        Returns:
            True if Slack accepted the message, False otherwise.

        """
        console.action("Posting notifications to slack")
        payload = self.build_payload(message, failure=failure)
        ic(payload)
        try:
            response = requests.post(url, json=payload, timeout=self.timeout)
        except requests.RequestException as err:
            console.warning(f"While sending notifications to slack: {err}")
            return False
        return response.status_code == 200
