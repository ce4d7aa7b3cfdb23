"""Account model for API-key authenticated snapshot consumers."""

from dataclasses import dataclass, field

ACCOUNT_STATUSES = ("active", "suspended")


@dataclass(frozen=True)
class Account:
    account_id: str
    api_key: str = field(repr=False)
    label: str = ""
    status: str = "active"  # one of ACCOUNT_STATUSES

    @property
    def is_active(self) -> bool:
        return self.status == "active"
