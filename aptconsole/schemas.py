# Pydantic models: write payloads sent upstream and request/response bodies of the console API.
# Write payloads carry only the fields the wire format needs; related entities travel as {id} stubs.
from pydantic import BaseModel, Field, ConfigDict, field_validator, EmailStr
from typing import Any, Dict, List, Literal, Optional


Role = Literal["ADMIN", "SELLER", "AGENT", "USER"]
ROLES = ("ADMIN", "SELLER", "AGENT", "USER")

InventoryStatus = Literal["AVAILABLE", "SOLD", "RESERVED"]
BookingStatus = Literal["PENDING", "CONFIRMED", "CANCELLED", "COMPLETED"]
PaymentStatus = Literal["PENDING", "COMPLETED", "FAILED", "REFUNDED"]


def _strip(v: Any) -> Any:
    if isinstance(v, str):
        v = v.strip()
    return v


# Reference to a related entity by id; the only shape foreign keys take on the wire
class IdRef(BaseModel):
    id: int = Field(..., ge=1)


class WritePayload(BaseModel):
    # camelCase on the wire, snake_case in Python
    model_config = ConfigDict(populate_by_name=True)

    def wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=False)


# Users
class UserWrite(WritePayload):
    username: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    # Write-only; left out of the payload when blank so updates keep the stored password
    password: Optional[str] = None
    role: Role = "USER"

    @field_validator("username", "email", mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> Any:
        return _strip(v)

    def wire(self) -> Dict[str, Any]:
        data = self.model_dump(by_alias=True)
        if not data.get("password"):
            data.pop("password", None)
        return data


# Apartments
class ApartmentWrite(WritePayload):
    location: str = Field(..., min_length=1, max_length=255)
    price: float = Field(..., ge=0)
    size: int = Field(..., ge=1)
    features: Optional[str] = None
    photo_url: Optional[str] = Field(default=None, alias="photoUrl")
    available: bool = True

    @field_validator("location", mode="before")
    @classmethod
    def strip_location(cls, v: Any) -> Any:
        return _strip(v)


# Inventory: one row per apartment, enforced client-side only
class InventoryWrite(WritePayload):
    apartment: IdRef
    stock: int = Field(..., ge=0)
    status: InventoryStatus
    photo_url: Optional[str] = Field(default=None, alias="photoUrl")


# Bookings
class BookingWrite(WritePayload):
    user: IdRef
    apartment: IdRef
    # ISO-8601 instant, e.g. 2025-01-10T14:30:00.000Z
    booking_date: str = Field(..., alias="bookingDate")
    status: BookingStatus = "PENDING"


# Feedback
class FeedbackWrite(WritePayload):
    user: IdRef
    apartment: IdRef
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None


# Payments
class PaymentWrite(WritePayload):
    booking: IdRef
    amount: float = Field(..., gt=0)
    payment_date: Optional[str] = Field(default=None, alias="paymentDate")
    status: PaymentStatus = "PENDING"


# Installment plans: monthlyAmount is free-editable, not checked against the payment
class InstallmentPlanWrite(WritePayload):
    payment: IdRef
    installments: int = Field(..., ge=1)
    monthly_amount: float = Field(..., gt=0, alias="monthlyAmount")
    schedule: Optional[str] = None


# Session
class LoginRequest(BaseModel):
    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, v: Any) -> Any:
        return _strip(v)


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=1)
    role: Optional[Role] = None

    @field_validator("username", "email", mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> Any:
        return _strip(v)


class NavItem(BaseModel):
    name: str
    href: str


class SessionRead(BaseModel):
    authenticated: bool
    user: Optional[Dict[str, Any]] = None
    is_admin: bool = False
    is_seller: bool = False
    is_agent: bool = False
    is_user: bool = False
    navigation: List[NavItem] = []


# Screens
class FormStateRead(BaseModel):
    open: bool
    editing_id: Optional[int] = None
    pending: bool = False
    values: Dict[str, Any] = {}
    errors: Dict[str, str] = {}


class MutationRead(BaseModel):
    ok: bool
    action: Literal["create", "update", "delete"]
    resource: str
    id: Optional[int] = None
    entity: Optional[Dict[str, Any]] = None
    message: str
    form: FormStateRead


class ScreenPageRead(BaseModel):
    screen: str
    title: str
    items: List[Dict[str, Any]]
    total: int
    page: int
    page_size: int
    pages: int
    # Set when the last refresh failed and the rows shown are the previous ones
    error: Optional[str] = None
    facets: Dict[str, List[str]] = {}
    sorts: List[str] = []


class SuggestionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    payment_id: Any = Field(default=None, alias="paymentId")
    installments: Any = None
    monthly_amount: Any = Field(default=None, alias="monthlyAmount")
    last_suggested: Any = Field(default=None, alias="lastSuggested")


class SuggestionRead(BaseModel):
    suggested: Optional[float] = None
    monthly_amount: Optional[Any] = Field(default=None, serialization_alias="monthlyAmount")
    overwritten: bool = False


class DashboardRead(BaseModel):
    total_users: int = Field(default=0, serialization_alias="totalUsers")
    total_apartments: int = Field(default=0, serialization_alias="totalApartments")
    total_bookings: int = Field(default=0, serialization_alias="totalBookings")
    total_revenue: float = Field(default=0, serialization_alias="totalRevenue")
    quick_actions: List[Dict[str, str]] = Field(default_factory=list, serialization_alias="quickActions")
