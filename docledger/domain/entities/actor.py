"""Attribution data supplied by the request-handling layer."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ActorContext:
    """Who triggered a ledger write. Every field is optional."""

    user_id: str | None = None
    user_agent: str | None = None
    ip_address: str | None = None


SYSTEM_ACTOR = ActorContext()


__all__ = ["ActorContext", "SYSTEM_ACTOR"]
