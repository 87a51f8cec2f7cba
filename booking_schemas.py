from datetime import datetime
from types import MappingProxyType
from typing import Any, List, Literal, Mapping, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_serializer,
    field_validator,
    model_validator,
)

from errors import InvalidInputError

MIN_GUESTS = 2
MAX_GUESTS = 40

FlowState = Literal[
    "no_estimate",
    "estimated",
    "authorization_requested",
    "authorization_ready",
    "confirming",
    "succeeded",
    "failed",
]


class BookingRequest(BaseModel):
    start: datetime
    end: datetime
    guests: int = Field(ge=MIN_GUESTS, le=MAX_GUESTS)
    extra_room: bool = False
    photographer: bool = False
    all_inclusive: bool = False
    event_planning: str = ""     # free-text notes, not priced

    @classmethod
    def from_form(cls, data: Mapping[str, Any]) -> "BookingRequest":
        """
        Build a request from the booking form's field names
        (startdate/starttime/enddate/endtime/guests/extraRoom/photographer/
        allInclusive/eventPlanning). Raises InvalidInputError on anything
        that does not parse or violates the guest policy.
        """
        try:
            start = datetime.fromisoformat(f"{data['startdate']}T{data['starttime']}")
            end = datetime.fromisoformat(f"{data['enddate']}T{data['endtime']}")
        except KeyError as exc:
            raise InvalidInputError(f"Missing booking field: {exc.args[0]}") from exc
        except (TypeError, ValueError) as exc:
            raise InvalidInputError("Event dates and times must be valid") from exc

        try:
            return cls(
                start=start,
                end=end,
                guests=data.get("guests"),
                extra_room=data.get("extraRoom") or False,
                photographer=data.get("photographer") or False,
                all_inclusive=data.get("allInclusive") or False,
                event_planning=data.get("eventPlanning") or "",
            )
        except ValidationError as exc:
            fields = {str(err["loc"][0]) for err in exc.errors() if err["loc"]}
            if "guests" in fields:
                raise InvalidInputError(
                    f"Guest count must be between {MIN_GUESTS} and {MAX_GUESTS}"
                ) from exc
            raise InvalidInputError("Invalid booking details") from exc


class PriceBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    base_rate: float
    guest_fee: float
    cleaning_fee: float
    add_ons: Mapping[str, float] = Field(default_factory=dict, validate_default=True)  # selected add-ons only

    @field_validator("add_ons")
    @classmethod
    def _freeze_add_ons(cls, value):
        return MappingProxyType(dict(value))

    @field_serializer("add_ons")
    def _dump_add_ons(self, value):
        return dict(value)

    @property
    def total(self) -> float:
        return self.base_rate + self.guest_fee + self.cleaning_fee + sum(self.add_ons.values())


class PaymentSession(BaseModel):
    confirmed_total: float = 0.0
    state: FlowState = "no_estimate"
    authorization: Literal["absent", "pending", "ready", "failed"] = "absent"
    client_secret: Optional[str] = None   # client-safe handle, never the secret key
    outcome: Literal["none", "succeeded", "failed"] = "none"
    message: Optional[str] = None


class BookingSession(BaseModel):
    """
    One user's in-progress flow. Passed explicitly to the orchestrator;
    nothing about a session lives in module or global state.
    """

    booking: Optional[BookingRequest] = None
    breakdown: Optional[PriceBreakdown] = None
    payment: PaymentSession = Field(default_factory=PaymentSession)


class LineItem(BaseModel):
    id: str
    amount: int = Field(ge=0)   # smallest currency unit


class PaymentIntentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: Optional[int] = Field(default=None, gt=0)
    items: Optional[List[LineItem]] = None
    total_price: Optional[float] = Field(default=None, alias="totalPrice", ge=0)
    currency: Optional[str] = None
    booking: Optional[BookingRequest] = None

    @model_validator(mode="after")
    def _require_amount_or_items(self):
        if self.amount is None and (not self.items or self.total_price is None):
            raise ValueError("Invalid request data")
        return self


class PaymentIntentResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    client_secret: str = Field(alias="clientSecret")


class ErrorResponse(BaseModel):
    error: str
