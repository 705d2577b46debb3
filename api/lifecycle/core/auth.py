from dataclasses import dataclass
from enum import Enum


class ActorRole(str, Enum):
    CANDIDATE = "candidate"
    RECRUITER = "recruiter"
    MODERATOR = "moderator"
    ADMIN = "admin"


@dataclass(frozen=True, slots=True)
class Actor:
    actor_id: str
    role: ActorRole

    def has_any_role(self, roles: frozenset[ActorRole]) -> bool:
        return self.role in roles


def parse_role(value: str | ActorRole) -> ActorRole | None:
    if isinstance(value, ActorRole):
        return value
    try:
        return ActorRole(value.strip().lower())
    except ValueError:
        return None
