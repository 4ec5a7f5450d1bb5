from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class UpstreamModel(BaseModel):
    """Decoded copy of a marketplace API object (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ServiceEntry(UpstreamModel):
    name: str = ""
    rate: Optional[float] = None
    description: str = ""


class User(UpstreamModel):
    id: str = Field(alias="_id")
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    role: str = "Community Member"
    type: Optional[str] = None
    profile_pic: Optional[str] = None
    skills: List[str] = Field(default_factory=list)
    verified: bool = False
    banned: bool = False


class Provider(UpstreamModel):
    id: str = Field(alias="_id")
    first_name: str = ""
    last_name: str = ""
    occupation: Optional[str] = None
    address: Optional[str] = None
    skills: List[str] = Field(default_factory=list)
    services: List[ServiceEntry] = Field(default_factory=list)
    service_description: Optional[str] = None
    service_rate: Optional[float] = None
    average_rating: Optional[float] = None
    total_reviews: Optional[int] = None
    years_experience: Optional[float] = None
    verified: bool = False
    is_online: bool = False
    profile_pic: Optional[str] = None
    created_at: Optional[datetime] = None


class BudgetRange(UpstreamModel):
    min: Optional[float] = None
    max: Optional[float] = None


class ServiceRequest(UpstreamModel):
    id: str = Field(alias="_id")
    name: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    address: Optional[str] = None
    location: Optional[str] = None
    type_of_work: Optional[str] = None
    service_category: Optional[str] = None
    preferred_schedule: Optional[str] = None
    preferred_date: Optional[datetime] = None
    time: Optional[str] = None
    budget: Optional[float] = None
    min_budget: Optional[float] = None
    max_budget: Optional[float] = None
    budget_range: Optional[BudgetRange] = None
    status: Optional[str] = None
    recommendation_score: Optional[float] = None
    created_at: Optional[datetime] = None


class Application(UpstreamModel):
    id: str = Field(alias="_id")
    service_request: Optional[ServiceRequest] = None
    provider: Optional[Dict[str, Any]] = None
    commission_fee: Optional[float] = None
    status: str = "Applied"
    created_at: Optional[datetime] = None


class Offer(UpstreamModel):
    id: str = Field(alias="_id")
    type: Literal["direct", "request"] = "direct"
    title: Optional[str] = None
    description: Optional[str] = None
    min_budget: Optional[float] = None
    max_budget: Optional[float] = None
    status: str = "Open"
    created_at: Optional[datetime] = None


class Booking(UpstreamModel):
    id: str = Field(alias="_id")
    status: str = "Working"
    provider: Optional[Any] = None
    requester: Optional[Any] = None
    service_request: Optional[Any] = None
    proof_of_work: List[str] = Field(default_factory=list)
    completion_notes: Optional[str] = None


class ChatParticipant(UpstreamModel):
    id: str = Field(alias="_id")
    first_name: str = ""
    last_name: str = ""
    profile_pic: Optional[str] = None


class ChatMessage(UpstreamModel):
    id: Optional[str] = Field(default=None, alias="_id")
    local_id: Optional[str] = None
    appointment: Optional[str] = None
    sender: Optional[ChatParticipant] = None
    message: str = ""
    timestamp: Optional[datetime] = None
    created_at: Optional[datetime] = None
    status: Optional[str] = None  # sent | delivered | seen
    is_system: bool = False
    pending: bool = False

    @property
    def sent_at(self) -> Optional[datetime]:
        return self.timestamp or self.created_at


class ChatSummary(UpstreamModel):
    other_user: Optional[ChatParticipant] = None
    appointment_id: str
    last_message: Optional[ChatMessage] = None
    unread_count: int = 0
    can_complete: bool = False
    service_request: Optional[Any] = None
    status: Optional[str] = None


class ChatThread(UpstreamModel):
    other_user: ChatParticipant
    appointment_id: Optional[str] = None
    appointments: List[str] = Field(default_factory=list)
    last_message: Optional[ChatMessage] = None
    total_unread_count: int = 0
    can_complete: bool = False
    service_request: Optional[Any] = None
    status: Optional[str] = None


class Notification(UpstreamModel):
    id: str = Field(alias="_id")
    title: str = "New Notification"
    message: str = ""
    category: str = "system"
    read: bool = False
    created_at: Optional[datetime] = None


class ProviderFilters(BaseModel):
    search: str = ""
    service: str = ""
    min_rating: float = 0
    max_rate: float = 10000
    location: str = ""
    verified: bool = False
    top_rated: bool = False
    available_now: bool = False
    sort_by: Literal["rating", "rate-low", "rate-high", "reviews", "experience", "recent"] = "rating"


class RequestFilters(BaseModel):
    search: str = ""
    status: str = "All"
    service_type: str = "All"
    min_budget: Optional[float] = None
    max_budget: Optional[float] = None


class JobFilters(BaseModel):
    service_type: str = ""
    min_budget: float = 0
    max_budget: float = 10000
    date_range: Literal["any", "today", "week", "month"] = "any"
    urgency: Literal["any", "urgent"] = "any"
    sort_by: Literal["relevance", "budget-low", "budget-high", "date"] = "relevance"


class Page(BaseModel):
    items: List[Any]
    page: int
    per_page: int
    total: int
    total_pages: int


class DirectOfferCreate(BaseModel):
    title: str = ""
    description: str = ""
    location: str = ""
    min_budget: Optional[Any] = None
    max_budget: Optional[Any] = None
    preferred_date: Optional[str] = None
    preferred_time: Optional[str] = None


class ServiceRequestCreate(BaseModel):
    title: str = ""
    description: str = ""
    location: str = ""
    service_category: str = ""
    min_budget: Optional[float] = None
    max_budget: Optional[float] = None
    preferred_date: Optional[str] = None
    preferred_time: Optional[str] = None
    notes: str = ""


class OfferToProviderRequest(BaseModel):
    provider_id: str


class ApplyRequest(BaseModel):
    commission_fee: Any = None


class RespondRequest(BaseModel):
    action: Literal["accept", "decline"]


class OfferRespondRequest(BaseModel):
    action: Literal["accept", "decline"]
    type: Literal["direct", "request"] = "direct"


class ReviewCreate(BaseModel):
    booking_id: str
    rating: Any = None
    comments: str = ""


class ChatOpenRequest(BaseModel):
    appointment_id: str


class ChatOpenProviderRequest(BaseModel):
    provider_id: str


class ChatSendRequest(BaseModel):
    message: str


class ChatEvent(BaseModel):
    event: str
    data: Any = None


class ChatReportRequest(BaseModel):
    reason: str


class ChatRateRequest(BaseModel):
    rating: Any = None
    comments: str = ""


class Emission(BaseModel):
    event: Literal["join-chat", "typing", "stop-typing"]
    room: str


class ChatState(BaseModel):
    view: Literal["list", "chat"]
    threads: List[ChatThread]
    total_unread: int
    selected: Optional[ChatThread] = None
    messages: List[ChatMessage] = Field(default_factory=list)
    typing_users: List[str] = Field(default_factory=list)
    can_send: bool = False
    error: Optional[str] = None
    emissions: List[Emission] = Field(default_factory=list)


class SupportMessageRequest(BaseModel):
    message: str


class SupportTurn(BaseModel):
    sender: Literal["user", "support"]
    message: str
    timestamp: datetime


class HelpTopic(BaseModel):
    id: int
    category: str
    title: str
    description: str
    content: str


class SavedSearch(BaseModel):
    id: str
    name: str
    filters: Dict[str, Any]
    created_at: str


class SavedSearchCreate(BaseModel):
    name: str
    filters: ProviderFilters


class RecentSearchCreate(BaseModel):
    term: str


class Preferences(BaseModel):
    favorite_providers: List[str] = Field(default_factory=list)
    saved_searches: List[SavedSearch] = Field(default_factory=list)
    recent_searches: List[str] = Field(default_factory=list)


class AccountSession(BaseModel):
    state: Literal["active", "admin", "verification_pending"]
    user: Optional[User] = None
