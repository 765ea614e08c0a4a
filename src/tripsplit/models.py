"""Pydantic domain models for TripSplit."""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer

# Amounts stay Decimal in memory and are stored as plain JSON numbers.
Money = Annotated[
    Decimal, PlainSerializer(float, return_type=float, when_used="json")
]

# Opaque friend id; the settlement engine only compares these.
MemberId = str


def new_id() -> str:
    """Generate a random record id."""
    return str(uuid4())


# ============================================================================
# Stored Models
# ============================================================================


class Friend(BaseModel):
    """A person who can be added to trips."""

    id: str = Field(default_factory=new_id)
    name: str
    email: str
    whatsapp: str = ""
    photo: str | None = None  # data URL


class Expense(BaseModel):
    """A single payment split equally among its participants.

    The payer does not have to be one of the participants.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_id)
    description: str = ""
    amount: Money = Field(gt=0)
    payer: MemberId = Field(alias="paidById")
    participants: list[MemberId] = Field(alias="splitWith")


class Trip(BaseModel):
    """A trip with its members and expenses, both in insertion order."""

    id: str = Field(default_factory=new_id)
    name: str
    date: date
    members: list[MemberId] = Field(default_factory=list)
    expenses: list[Expense] = Field(default_factory=list)


# ============================================================================
# Derived Models
# ============================================================================


class Balance(BaseModel):
    """Net position of a member: positive is owed money, negative owes."""

    model_config = ConfigDict(populate_by_name=True)

    member: MemberId = Field(alias="friendId")
    amount: Money


class Settlement(BaseModel):
    """A directed payment from a debtor to a creditor."""

    model_config = ConfigDict(populate_by_name=True)

    from_member: MemberId = Field(alias="from")
    to_member: MemberId = Field(alias="to")
    amount: Money


class TripSettlement(BaseModel):
    """Balances and settlements computed for one trip."""

    balances: list[Balance]
    settlements: list[Settlement]


class ShareLinks(BaseModel):
    """Prefilled links for sharing a trip digest."""

    email: str
    whatsapp: str


# ============================================================================
# Cache Models
# ============================================================================


class SummaryRecord(BaseModel):
    """A generated trip summary, cached by the trip's content hash.

    The trip_hash changes whenever name, date, members or expenses change,
    so a stale summary is never served for an edited trip.
    """

    id: int | None = None
    trip_id: str
    trip_hash: str
    summary: str
    model: str
    created_at: datetime = Field(default_factory=datetime.now)
