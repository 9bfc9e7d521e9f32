"""
Core Data Models for the Ledger Assistant

These models define the strict schemas for everything that flows
between the chat transport, the extraction oracle and the ledger store:

1. Account        - external entity, read and lazily bound to a chat address
2. LedgerEntry    - a persisted expense or income, owned by exactly one account
3. TransactionIntent - an ephemeral create/edit instruction extracted from text
4. ExtractionResult / ReconcileOutcome - typed results of the fallible steps

INVARIANTS enforced here:
- Ledger amounts are strictly positive.
- Ledger categories are never empty and always Title-Case.
- An edit patch only carries the fields the user actually mentioned.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ledgerbot.normalization import normalize_category


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class EntryKind(str, Enum):
    """Direction of money for a ledger entry."""
    EXPENSE = "expense"
    INCOME = "income"


class IntentAction(str, Enum):
    """What an extracted intent asks the reconciler to do."""
    CREATE = "create"
    EDIT = "edit"


class ExtractionStatus(str, Enum):
    """
    Outcome class of one oracle round-trip.

    An empty INTENTS result is valid and distinct from PARSE_FAILED.
    """
    INTENTS = "intents"
    PARSE_FAILED = "parse_failed"
    RATE_LIMITED = "rate_limited"


class ReconcileStatus(str, Enum):
    """Per-intent outcome of reconciliation against the store."""
    CREATED = "created"
    UPDATED = "updated"
    NOTHING_TO_UPDATE = "nothing_to_update"
    TARGET_NOT_FOUND = "target_not_found"
    PERSISTENCE_FAILED = "persistence_failed"


class IdentityState(str, Enum):
    """Result state of resolving a chat address to an account."""
    RESOLVED_BY_ADDRESS = "resolved_by_address"
    RESOLVED_BY_AUTO_LINK = "resolved_by_auto_link"
    UNRESOLVABLE = "unresolvable"


# =============================================================================
# ACCOUNTS
# =============================================================================

class Account(BaseModel):
    """
    A user account.

    Accounts are created by an external signup process. This system only
    reads them, binds a chat address once, and renames them on request.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        ...,
        min_length=1,
        description="Account identifier assigned at signup"
    )
    name: Optional[str] = Field(
        default=None,
        description="Display name"
    )
    phone: Optional[str] = Field(
        default=None,
        description="Canonical phone, authoritative, set at signup"
    )
    channel_address: Optional[str] = Field(
        default=None,
        description="Chat address bound by auto-link (at most one)"
    )
    auth_code: Optional[str] = Field(
        default=None,
        description="Transient one-time login code"
    )


class AccountChange(BaseModel):
    """A row-level change notification on the accounts table."""

    old: Optional[Account] = None
    new: Optional[Account] = None

    @property
    def introduces_auth_code(self) -> bool:
        """True when the new row carries a phone and a code the old row did not."""
        if self.new is None or not self.new.auth_code or not self.new.phone:
            return False
        previous_code = self.old.auth_code if self.old else None
        return self.new.auth_code != previous_code


# =============================================================================
# LEDGER
# =============================================================================

class EntryPatch(BaseModel):
    """
    A partial set of ledger fields.

    Used both as the payload of a create intent and as the patch of an
    edit intent. Unset fields stay None and are never written.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    kind: Optional[EntryKind] = None
    amount: Optional[Decimal] = Field(default=None, gt=0)
    description: Optional[str] = Field(default=None, max_length=500)
    category: Optional[str] = Field(default=None, max_length=100)
    transaction_date: Optional[date] = None

    def changes(self) -> dict:
        """Only the fields that were provided."""
        return self.model_dump(exclude_none=True)

    @property
    def is_empty(self) -> bool:
        return not self.changes()


class LedgerEntry(BaseModel):
    """
    A single recorded expense or income event.

    The id is assigned by the store on insert.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[int] = Field(
        default=None,
        description="Store-assigned identifier"
    )
    account_id: str = Field(
        ...,
        min_length=1,
        description="Owning account"
    )
    kind: EntryKind
    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Positive amount"
    )
    description: str = Field(
        default="",
        max_length=500
    )
    category: str = Field(
        default="Other",
        description="Title-Case category"
    )
    transaction_date: date
    channel_phone: Optional[str] = Field(
        default=None,
        description="Chat address the entry was recorded from"
    )
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category_field(cls, v: Optional[str]) -> str:
        return normalize_category(v)


# =============================================================================
# INTENTS AND RESULTS
# =============================================================================

class TransactionIntent(BaseModel):
    """
    A not-yet-committed instruction extracted from freeform text.

    For CREATE the patch is the new entry's data. For EDIT the target is
    `target_id` if given, otherwise the latest entry with `search_amount`.
    """

    action: IntentAction
    target_id: Optional[int] = None
    search_amount: Optional[Decimal] = Field(default=None, gt=0)
    patch: EntryPatch = Field(default_factory=EntryPatch)


class ExtractionResult(BaseModel):
    """Typed result of the extraction contract."""

    status: ExtractionStatus
    intents: list[TransactionIntent] = Field(default_factory=list)
    dropped: int = Field(
        default=0,
        ge=0,
        description="Intents discarded because they failed validation"
    )

    @classmethod
    def of(cls, intents: list[TransactionIntent], dropped: int = 0) -> "ExtractionResult":
        return cls(status=ExtractionStatus.INTENTS, intents=intents, dropped=dropped)

    @classmethod
    def parse_failed(cls) -> "ExtractionResult":
        return cls(status=ExtractionStatus.PARSE_FAILED)

    @classmethod
    def rate_limited(cls) -> "ExtractionResult":
        return cls(status=ExtractionStatus.RATE_LIMITED)


class ReconcileOutcome(BaseModel):
    """What happened to one intent."""

    action: IntentAction
    status: ReconcileStatus
    entry_id: Optional[int] = None
    fields: EntryPatch = Field(default_factory=EntryPatch)
    search_amount: Optional[Decimal] = None
    error_message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status in (ReconcileStatus.CREATED, ReconcileStatus.UPDATED)


# =============================================================================
# TRANSPORT-FACING MODELS
# =============================================================================

class InboundMessage(BaseModel):
    """An inbound chat message as delivered by the transport."""

    message_id: Optional[str] = None
    from_address: str = Field(..., min_length=1)
    author: Optional[str] = None
    body: str = ""
    is_group: bool = False
    is_status: bool = False
    from_me: bool = False

    @property
    def should_ignore(self) -> bool:
        """Group chats, status broadcasts, own messages and empty bodies."""
        return (
            self.is_group
            or self.is_status
            or self.from_me
            or self.from_address == "status@broadcast"
            or not self.body.strip()
        )


class Resolution(BaseModel):
    """Result of identity resolution for one inbound message."""

    state: IdentityState
    account: Optional[Account] = None

    @property
    def linked(self) -> bool:
        """The binding was created during this turn."""
        return self.state == IdentityState.RESOLVED_BY_AUTO_LINK

    @property
    def resolved(self) -> bool:
        return self.account is not None
