"""Response dispatcher: every message the bot sends goes through here.

WHY: Command handlers and HTTP callbacks report progress and results to
the channel the command came from. They should not care whether a reply
is ephemeral or public, how the bot's display name and icon are set, or
what happens when Slack rejects a post.

HOW: ResponseDispatcher wraps a slack_sdk WebClient. post_ephemeral()
replies to the invoking user only; post_message() posts to the channel;
upload_file() attaches content with files_upload_v2; open_modal() opens
a view for a trigger_id. Each call applies the bot username and the
configured profile image.

RULES:
- Failures to deliver are logged and reported via the bool return value,
  never raised (the user action already happened on the Jenkins side)
- Every post uses BOT_USERNAME; icon_url only when configured
- Uses files_upload_v2 (v1 is deprecated)
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Union

from slack_sdk.errors import SlackApiError

from jenkins_slack.config import BOT_USERNAME, Settings, get_settings

logger = logging.getLogger(__name__)

# Delivery failures: Slack rejected the call, or the HTTP layer failed
_DELIVERY_ERRORS = (SlackApiError, OSError)


class ResponseDispatcher:
    """Sends ephemeral replies, channel posts, files, and modals."""

    def __init__(
        self,
        client: Any,
        settings_provider: Callable[[], Settings] = get_settings,
    ) -> None:
        self._client = client
        self._settings_provider = settings_provider

    def _identity(self) -> Dict[str, str]:
        identity = {"username": BOT_USERNAME}
        icon_url = self._settings_provider().profile_image_url
        if icon_url:
            identity["icon_url"] = icon_url
        return identity

    def post_ephemeral(self, channel_id: str, user_id: str, text: str) -> bool:
        """Reply to user_id only, in channel_id."""
        try:
            self._client.chat_postEphemeral(
                channel=channel_id,
                user=user_id,
                text=text,
                **self._identity()
            )
        except _DELIVERY_ERRORS:
            logger.exception("Failed to post ephemeral message to %s", channel_id)
            return False
        return True

    def post_message(self, channel_id: str, text: str) -> bool:
        """Post a message visible to everyone in channel_id."""
        try:
            self._client.chat_postMessage(
                channel=channel_id,
                text=text,
                **self._identity()
            )
        except _DELIVERY_ERRORS:
            logger.exception("Failed to post message to %s", channel_id)
            return False
        return True

    def upload_file(
        self,
        channel_id: str,
        content: Union[bytes, str],
        filename: str,
        title: Optional[str] = None,
        initial_comment: Optional[str] = None,
    ) -> bool:
        """Upload content as a file shared to channel_id.

        RULES:
        - title defaults to filename
        - Empty content is still uploaded (Slack shows an empty file)
        """
        kwargs: Dict[str, Any] = {
            "channel": channel_id,
            "content": content,
            "filename": filename,
            "title": title or filename,
        }
        if initial_comment:
            kwargs["initial_comment"] = initial_comment

        try:
            self._client.files_upload_v2(**kwargs)
        except _DELIVERY_ERRORS:
            logger.exception("Failed to upload %s to %s", filename, channel_id)
            return False
        return True

    def open_modal(self, trigger_id: str, view: Dict[str, Any]) -> bool:
        """Open view for the interaction identified by trigger_id."""
        try:
            self._client.views_open(trigger_id=trigger_id, view=view)
        except _DELIVERY_ERRORS:
            logger.exception("Failed to open modal %s", view.get("callback_id"))
            return False
        return True
