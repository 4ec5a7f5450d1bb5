import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, TypeVar

from skillconnect.models import (
    Application,
    Booking,
    JobFilters,
    Page,
    Provider,
    ProviderFilters,
    RequestFilters,
    ServiceRequest,
)

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 12
SMALL_DEVICE_PAGE_SIZE = 8
UNLIMITED_RATE = 10000
UNLIMITED_BUDGET = 10000
TOP_RATED_THRESHOLD = 4.5
SEARCH_MIN_TOKEN_LENGTH = 3

_DATE_RANGE_DAYS = {"today": 1, "week": 7, "month": 30}


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _timestamp(value: Optional[datetime]) -> float:
    aware = _utc(value)
    return aware.timestamp() if aware else 0.0


def _now(now: Optional[datetime]) -> datetime:
    return _utc(now) or datetime.now(timezone.utc)


def _contains(haystack: Optional[str], needle: str) -> bool:
    return bool(haystack) and needle in haystack.lower()


def tokenize_query(query: str) -> List[str]:
    return [word for word in (query or "").lower().split() if len(word) >= SEARCH_MIN_TOKEN_LENGTH]


def provider_search_text(provider: Provider) -> str:
    parts: List[str] = [
        provider.first_name,
        provider.last_name,
        " ".join(provider.skills),
        provider.service_description or "",
        provider.occupation or "",
    ]
    for service in provider.services:
        parts.append(service.name)
        parts.append(service.description)
    return " ".join(part for part in parts if part).lower()


def matches_search(provider: Provider, tokens: Sequence[str]) -> bool:
    # No usable tokens means no constraint.
    if not tokens:
        return True
    text = provider_search_text(provider)
    return any(token in text for token in tokens)


_PROVIDER_SORTS: Dict[str, Callable[[Provider], Any]] = {
    "rating": lambda p: -(p.average_rating or 0),
    "rate-low": lambda p: p.service_rate or 0,
    "rate-high": lambda p: -(p.service_rate or 0),
    "reviews": lambda p: -(p.total_reviews or 0),
    "experience": lambda p: -(p.years_experience or 0),
    "recent": lambda p: -_timestamp(p.created_at),
}


def filter_providers(providers: Iterable[Provider], filters: ProviderFilters) -> List[Provider]:
    """Apply the browse filters (ANDed) and the selected sort.

    Returns a new list; ``providers`` is left untouched.
    """
    rows = list(providers)
    tokens = tokenize_query(filters.search)
    if filters.search.strip():
        rows = [p for p in rows if matches_search(p, tokens)]

    service = filters.service.strip().lower()
    if service:
        rows = [
            p
            for p in rows
            if any(service in skill.lower() for skill in p.skills) or _contains(p.service_description, service)
        ]
    if filters.min_rating > 0:
        rows = [p for p in rows if (p.average_rating or 0) >= filters.min_rating]
    if filters.max_rate < UNLIMITED_RATE:
        rows = [p for p in rows if (p.service_rate or 0) <= filters.max_rate]

    location = filters.location.strip().lower()
    if location:
        rows = [p for p in rows if _contains(p.address, location)]
    if filters.verified:
        rows = [p for p in rows if p.verified]
    if filters.top_rated:
        rows = [p for p in rows if (p.average_rating or 0) >= TOP_RATED_THRESHOLD]
    if filters.available_now:
        rows = [p for p in rows if p.is_online]

    return sorted(rows, key=_PROVIDER_SORTS[filters.sort_by])


def paginate(items: Sequence[T], page: int = 1, per_page: int = DEFAULT_PAGE_SIZE) -> Page:
    per_page = max(1, per_page)
    total = len(items)
    total_pages = max(1, math.ceil(total / per_page))
    page = min(max(1, page), total_pages)
    start = (page - 1) * per_page
    return Page(
        items=list(items[start : start + per_page]),
        page=page,
        per_page=per_page,
        total=total,
        total_pages=total_pages,
    )


def page_size_for(small_device: bool) -> int:
    return SMALL_DEVICE_PAGE_SIZE if small_device else DEFAULT_PAGE_SIZE


def filter_requests(requests: Iterable[ServiceRequest], filters: RequestFilters) -> List[ServiceRequest]:
    rows = list(requests)
    term = filters.search.strip().lower()
    if term:
        rows = [
            r
            for r in rows
            if any(
                _contains(field, term)
                for field in (r.title, r.description, r.location, r.service_category, r.preferred_schedule)
            )
        ]
    if filters.status != "All":
        rows = [r for r in rows if r.status == filters.status]
    if filters.service_type != "All":
        rows = [r for r in rows if r.service_category == filters.service_type]
    # Requests without a budget range are never excluded by the budget bounds.
    if filters.min_budget:
        rows = [
            r
            for r in rows
            if r.budget_range is None or r.budget_range.min is None or r.budget_range.min >= filters.min_budget
        ]
    if filters.max_budget:
        rows = [
            r
            for r in rows
            if r.budget_range is None or r.budget_range.max is None or r.budget_range.max <= filters.max_budget
        ]
    return rows


def relevance_score(job: ServiceRequest, skills: Sequence[str] = (), now: Optional[datetime] = None) -> float:
    score = job.recommendation_score or 0
    budget = job.budget or 0
    if 1000 <= budget <= 5000:
        score += 2
    elif budget > 5000:
        score += 1

    posted = _utc(job.created_at or job.preferred_date)
    if posted is not None:
        days_since_posted = (_now(now) - posted).total_seconds() / 86400
        if days_since_posted < 1:
            score += 3
        elif days_since_posted < 3:
            score += 2
        elif days_since_posted < 7:
            score += 1

    type_of_work = (job.type_of_work or "").lower()
    if type_of_work and any(skill and skill.lower() in type_of_work for skill in skills):
        score += 2
    return score


def filter_jobs(
    jobs: Iterable[ServiceRequest],
    filters: JobFilters,
    skills: Sequence[str] = (),
    now: Optional[datetime] = None,
) -> List[ServiceRequest]:
    current = _now(now)
    rows = list(jobs)

    service = filters.service_type.strip().lower()
    if service:
        rows = [j for j in rows if _contains(j.type_of_work, service) or _contains(j.notes, service)]

    if filters.min_budget > 0 or filters.max_budget < UNLIMITED_BUDGET:
        rows = [j for j in rows if filters.min_budget <= (j.budget or 0) <= filters.max_budget]

    if filters.date_range != "any":
        horizon = _DATE_RANGE_DAYS[filters.date_range]

        def within_range(job: ServiceRequest) -> bool:
            when = _utc(job.preferred_date or job.created_at)
            if when is None:
                return False
            days = (when - current).total_seconds() / 86400
            return 0 <= days <= horizon

        rows = [j for j in rows if within_range(j)]

    if filters.urgency == "urgent":

        def is_urgent(job: ServiceRequest) -> bool:
            when = _utc(job.preferred_date)
            if when is None:
                return False
            hours = (when - current).total_seconds() / 3600
            return 0 <= hours <= 24

        rows = [j for j in rows if is_urgent(j)]

    if filters.sort_by == "budget-low":
        return sorted(rows, key=lambda j: j.budget or 0)
    if filters.sort_by == "budget-high":
        return sorted(rows, key=lambda j: -(j.budget or 0))
    if filters.sort_by == "date":
        return sorted(rows, key=lambda j: -_timestamp(j.created_at or j.preferred_date))
    return sorted(rows, key=lambda j: -relevance_score(j, skills, current))


def filter_applications(
    applications: Iterable[Application],
    status: str = "All",
    search: str = "",
) -> List[Application]:
    rows = list(applications)
    if status and status != "All":
        rows = [a for a in rows if a.status == status]
    term = (search or "").strip().lower()
    if term:

        def matches(app: Application) -> bool:
            request = app.service_request
            if request is None:
                return False
            fields = (request.name, request.title, request.description, request.type_of_work, request.notes)
            return any(_contains(field, term) for field in fields)

        rows = [a for a in rows if matches(a)]
    return rows


def _party_id(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        ref = value.get("_id") or value.get("id")
        return str(ref) if ref is not None else None
    return str(value) if value is not None else None


def filter_bookings(
    bookings: Iterable[Booking],
    user_id: str,
    status: str = "All",
    role: str = "all",
) -> List[Booking]:
    """Bookings in ``status`` where the user is on the ``role`` side.

    The upstream list covers both sides of every booking and ignores the
    status query, so both predicates run here.
    """
    rows = list(bookings)
    if status and status != "All":
        rows = [b for b in rows if b.status == status]
    if role == "provider":
        rows = [b for b in rows if _party_id(b.provider) == user_id]
    elif role == "requester":
        rows = [b for b in rows if _party_id(b.requester) == user_id]
    return rows


def unique_by_id(items: Iterable[T], key: Callable[[T], Optional[str]] = lambda item: getattr(item, "id", None)) -> List[T]:
    seen = set()
    rows: List[T] = []
    for item in items:
        ident = key(item)
        if ident is not None and ident in seen:
            continue
        if ident is not None:
            seen.add(ident)
        rows.append(item)
    return rows
