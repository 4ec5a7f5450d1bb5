import logging
from typing import NoReturn, Union

from fastapi import HTTPException

from skillconnect.services.marketplace_api import MarketplaceApiError
from skillconnect.services.validation import DuplicateApplicationError, FormValidationError

logger = logging.getLogger(__name__)


def raise_http_error(exc: Union[MarketplaceApiError, FormValidationError]) -> NoReturn:
    if isinstance(exc, DuplicateApplicationError):
        raise HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, FormValidationError):
        raise HTTPException(status_code=400, detail=str(exc))
    if exc.status_code is None or exc.status_code >= 500:
        logger.warning("Upstream unavailable: %s", exc.message)
        raise HTTPException(status_code=502, detail=exc.message)
    raise HTTPException(status_code=exc.status_code, detail=exc.message)
