from __future__ import annotations

import logging
from typing import Any, Dict, Iterable

from dmscreen.core.errors import TransportError
from dmscreen.core.realtime.broker import PubSub

logger = logging.getLogger(__name__)


def combat_channel(session_id: str) -> str:
    return f"combat:{session_id}"


def campaign_channel(campaign_id: str) -> str:
    return f"campaign:{campaign_id}"


class RealtimeGateway:
    def __init__(self, pubsub: PubSub) -> None:
        self.pubsub = pubsub

    def publish_events(self, session_id: str, events: Iterable[Dict[str, Any]]) -> int:
        channel = combat_channel(session_id)
        delivered = 0
        for ev in events:
            try:
                n = self.pubsub.publish(channel, str(ev["type"]), ev)
            except Exception as e:
                raise TransportError(
                    "PUBLISH_FAILED",
                    f"Failed to publish {ev.get('type')} on {channel}: {e}",
                    {"session_id": session_id, "seq": ev.get("seq"), "committed": True},
                ) from e
            logger.debug("published %s seq=%s to %d subscribers", ev["type"], ev.get("seq"), n)
            delivered += n
        return delivered

    def publish_dice_roll(self, campaign_id: str, roll: Dict[str, Any]) -> int:
        channel = campaign_channel(campaign_id)
        try:
            return self.pubsub.publish(channel, "diceRollResult", roll)
        except Exception as e:
            raise TransportError(
                "PUBLISH_FAILED",
                f"Failed to publish dice roll on {channel}: {e}",
                {"campaign_id": campaign_id, "committed": True},
            ) from e
