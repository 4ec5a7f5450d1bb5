import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from skillconnect.models import Application, DirectOfferCreate, ServiceRequest, ServiceRequestCreate
from skillconnect.services.validation import (
    FormValidationError,
    has_already_applied,
    validate_commission_fee,
    validate_direct_offer,
    validate_review,
    validate_service_request,
)


def _offer(**overrides):
    data = {
        "title": "Fix sink",
        "description": "Leaking pipe",
        "location": "Tondo",
        "min_budget": "500",
        "max_budget": "1500",
        "preferred_date": "2024-06-10",
        "preferred_time": "09:00",
    }
    data.update(overrides)
    return DirectOfferCreate(**data)


def test_complete_offer_passes():
    validate_direct_offer(_offer())


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"title": "  "}, "Please enter a title for your service request"),
        ({"description": ""}, "Please describe the service you need"),
        ({"location": ""}, "Please enter your location"),
        ({"min_budget": "abc"}, "Please enter a valid minimum budget"),
        ({"min_budget": 0}, "Please enter a valid minimum budget"),
        ({"max_budget": None}, "Please enter a valid maximum budget"),
        ({"min_budget": 2000, "max_budget": 1000}, "Minimum budget cannot be greater than maximum budget"),
        ({"preferred_date": None}, "Please select a preferred date"),
        ({"preferred_time": ""}, "Please select a preferred time"),
    ],
)
def test_offer_failures_report_first_problem(overrides, message):
    with pytest.raises(FormValidationError) as excinfo:
        validate_direct_offer(_offer(**overrides))
    assert str(excinfo.value) == message


def test_service_request_requires_fields_and_ordered_budget():
    with pytest.raises(FormValidationError, match="Please fill in all required fields"):
        validate_service_request(ServiceRequestCreate(title="x", description="y", location="z"))
    with pytest.raises(FormValidationError, match="Minimum budget cannot be greater"):
        validate_service_request(
            ServiceRequestCreate(
                title="x", description="y", location="z", service_category="Plumbing", min_budget=900, max_budget=100
            )
        )


def test_commission_fee_bounds():
    request = ServiceRequest.model_validate({"_id": "r1", "minBudget": 500, "maxBudget": 5000})
    assert validate_commission_fee("1200", request) == 1200
    with pytest.raises(FormValidationError, match="Please enter a valid commission fee"):
        validate_commission_fee("-1", request)
    with pytest.raises(FormValidationError) as too_high:
        validate_commission_fee(6000, request)
    assert str(too_high.value) == "Commission fee cannot exceed ₱5,000"
    with pytest.raises(FormValidationError) as too_low:
        validate_commission_fee(100, request)
    assert str(too_low.value) == "Commission fee cannot be less than ₱500"


def test_has_already_applied():
    apps = [Application.model_validate({"_id": "x1", "serviceRequest": {"_id": "r1"}}), Application.model_validate({"_id": "x2"})]
    assert has_already_applied(apps, "r1") is True
    assert has_already_applied(apps, "r2") is False


def test_review_rating_range():
    assert validate_review("4") == 4
    for bad in (0, 6, "2.5", None, "five"):
        with pytest.raises(FormValidationError, match="Please enter a rating between 1 and 5."):
            validate_review(bad)
