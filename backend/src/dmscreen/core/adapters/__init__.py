from .characters import (
    CharacterProvider,
    CharacterRecord,
    ParticipantOverrides,
    SqlCharacterProvider,
    participant_from_character,
)

__all__ = [
    "CharacterProvider",
    "CharacterRecord",
    "ParticipantOverrides",
    "SqlCharacterProvider",
    "participant_from_character",
]
