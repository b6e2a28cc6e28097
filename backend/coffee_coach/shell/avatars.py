"""Static catalog of the selectable coach avatars."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

DEFAULT_AVATAR_ID = "Thaddeus_ProfessionalLook_public"


@dataclass(frozen=True, slots=True)
class AvatarDescriptor:
    id: str
    display_name: str
    subtitle: str
    voice_id: Optional[str] = None


AVATARS: List[AvatarDescriptor] = [
    AvatarDescriptor(
        id="Thaddeus_ProfessionalLook_public",
        display_name="Bora",
        subtitle="Coffee Expert",
    ),
    AvatarDescriptor(
        id="Katya_ProfessionalLook_public",
        display_name="Parla",
        subtitle="Wellness Coach",
    ),
]

_BY_ID: Dict[str, AvatarDescriptor] = {avatar.id: avatar for avatar in AVATARS}


def list_avatars() -> List[AvatarDescriptor]:
    return list(AVATARS)


def get_avatar(avatar_id: str) -> AvatarDescriptor:
    """Return the avatar with ``avatar_id``; raise ``KeyError`` if unknown."""
    try:
        return _BY_ID[avatar_id]
    except KeyError:
        raise KeyError(f"Unknown avatar: {avatar_id}") from None
