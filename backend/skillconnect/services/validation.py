import math
from typing import Any, Iterable, Optional

from skillconnect.models import Application, DirectOfferCreate, ServiceRequest, ServiceRequestCreate

DUPLICATE_APPLICATION_MESSAGE = "You have already applied to this request."


class FormValidationError(ValueError):
    pass


class DuplicateApplicationError(FormValidationError):
    pass


def parse_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        try:
            number = float(str(value).strip())
        except ValueError:
            return None
    return None if math.isnan(number) or math.isinf(number) else number


def format_peso(amount: float) -> str:
    if float(amount).is_integer():
        return f"₱{int(amount):,}"
    return f"₱{amount:,.2f}"


def _blank(value: Optional[str]) -> bool:
    return not (value or "").strip()


def validate_direct_offer(offer: DirectOfferCreate) -> None:
    """Check a direct service offer in form order; the first failure wins."""
    if _blank(offer.title):
        raise FormValidationError("Please enter a title for your service request")
    if _blank(offer.description):
        raise FormValidationError("Please describe the service you need")
    if _blank(offer.location):
        raise FormValidationError("Please enter your location")

    min_budget = parse_number(offer.min_budget)
    if min_budget is None or min_budget <= 0:
        raise FormValidationError("Please enter a valid minimum budget")
    max_budget = parse_number(offer.max_budget)
    if max_budget is None or max_budget <= 0:
        raise FormValidationError("Please enter a valid maximum budget")
    if min_budget > max_budget:
        raise FormValidationError("Minimum budget cannot be greater than maximum budget")

    if _blank(offer.preferred_date):
        raise FormValidationError("Please select a preferred date")
    if _blank(offer.preferred_time):
        raise FormValidationError("Please select a preferred time")


def validate_service_request(request: ServiceRequestCreate) -> None:
    if any(_blank(value) for value in (request.title, request.description, request.location, request.service_category)):
        raise FormValidationError("Please fill in all required fields")
    if (
        request.min_budget is not None
        and request.max_budget is not None
        and request.min_budget > request.max_budget
    ):
        raise FormValidationError("Minimum budget cannot be greater than maximum budget")


def validate_commission_fee(fee: Any, request: Optional[ServiceRequest] = None) -> float:
    value = parse_number(fee)
    if value is None or value < 0:
        raise FormValidationError("Please enter a valid commission fee")
    if request is not None:
        if request.max_budget and value > request.max_budget:
            raise FormValidationError(f"Commission fee cannot exceed {format_peso(request.max_budget)}")
        if request.min_budget and value < request.min_budget:
            raise FormValidationError(f"Commission fee cannot be less than {format_peso(request.min_budget)}")
    return value


def has_already_applied(applications: Iterable[Application], request_id: str) -> bool:
    return any(app.service_request is not None and app.service_request.id == request_id for app in applications)


def validate_review(rating: Any) -> int:
    value = parse_number(rating)
    if value is None or not value.is_integer() or not 1 <= value <= 5:
        raise FormValidationError("Please enter a rating between 1 and 5.")
    return int(value)
