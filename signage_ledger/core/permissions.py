from typing import FrozenSet, Iterable


class Capability:
    """Capability codes granted to callers by the upstream gateway."""
    LEDGER_READ = "ledger:read"
    LEDGER_TRANSITION = "ledger:transition"
    PAYMENTS_INGEST = "payments:ingest"
    SETTLEMENTS_READ = "settlements:read"
    SETTLEMENTS_GENERATE = "settlements:generate"
    QUOTES_CREATE = "quotes:create"
    SETTINGS_READ = "settings:read"

    WILDCARD = "*"

    @classmethod
    def all(cls) -> FrozenSet[str]:
        return frozenset({
            cls.LEDGER_READ, cls.LEDGER_TRANSITION, cls.PAYMENTS_INGEST,
            cls.SETTLEMENTS_READ, cls.SETTLEMENTS_GENERATE,
            cls.QUOTES_CREATE, cls.SETTINGS_READ,
        })


class Actor:
    """
    A pre-authenticated caller.

    Identity and capabilities are established upstream and checked here
    once, at the boundary; services only receive the actor id.
    """

    def __init__(self, actor_id: str, capabilities: Iterable[str]):
        self.id = actor_id
        self.capabilities = frozenset(c.strip() for c in capabilities if c and c.strip())

    def has_capability(self, capability: str) -> bool:
        # "ledger:*" grants every ledger capability
        if Capability.WILDCARD in self.capabilities or capability in self.capabilities:
            return True
        scope = capability.split(":", 1)[0]
        return f"{scope}:*" in self.capabilities

    def __repr__(self) -> str:
        return f"<Actor(id='{self.id}', capabilities={sorted(self.capabilities)})>"
