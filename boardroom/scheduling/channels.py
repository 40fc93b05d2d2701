"""Which delivery channels each reminder type goes out on."""

from enum import Enum
from typing import Dict, FrozenSet, Union

from boardroom.config import ReminderConfig
from boardroom.models import ReminderType


class Channel(Enum):
    EMAIL = "email"
    SMS = "sms"


ALL_CHANNELS: FrozenSet[Channel] = frozenset({Channel.EMAIL, Channel.SMS})

BASE_POLICY: Dict[ReminderType, FrozenSet[Channel]] = {
    ReminderType.STARTS_20: frozenset({Channel.EMAIL, Channel.SMS}),
    ReminderType.JOIN_NOW: frozenset({Channel.EMAIL}),
    ReminderType.ENDING_10: frozenset({Channel.SMS}),
}


def channels_for(
    reminder_type: Union[ReminderType, str], config: ReminderConfig
) -> FrozenSet[Channel]:
    """Channels to attempt for a reminder type, with per-type overrides applied.

    Types this build doesn't recognise go out on every channel.
    """
    if not isinstance(reminder_type, ReminderType):
        return ALL_CHANNELS

    channels = set(BASE_POLICY[reminder_type])
    if reminder_type is ReminderType.JOIN_NOW and config.join_now_sms:
        channels.add(Channel.SMS)
    if reminder_type is ReminderType.ENDING_10 and config.ending_10_email:
        channels.add(Channel.EMAIL)
    return frozenset(channels)
