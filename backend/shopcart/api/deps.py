from contextlib import contextmanager
from typing import Optional

from fastapi import Header, HTTPException, Request, Response

from shopcart.adapters.mock_payment import MockPaymentAdapter
from shopcart.config import settings
from shopcart.services.cart_service import Owner, new_anonymous_id
from shopcart.services.exceptions import CartServiceException
from shopcart.utils.logs import get_logger

log = get_logger("api")


def get_owner(
    request: Request,
    response: Response,
    x_user_id: Optional[str] = Header(None),
    x_anonymous_id: Optional[str] = Header(None),
) -> Owner:
    """
    Identity comes from the upstream session layer: X-User-Id for signed-in
    shoppers, otherwise the anonymous token (header or cookie). A fresh token
    is minted and handed back as a cookie when the shopper has none.
    """
    if x_user_id:
        return Owner(user_id=x_user_id)
    anonymous_id = x_anonymous_id or request.cookies.get(settings.ANON_COOKIE_NAME)
    if not anonymous_id:
        anonymous_id = new_anonymous_id()
    response.set_cookie(
        settings.ANON_COOKIE_NAME, anonymous_id, httponly=False, samesite="Lax"
    )
    return Owner(anonymous_id=anonymous_id)


def require_user(x_user_id: Optional[str] = Header(None)) -> str:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Sign-in required")
    return x_user_id


def get_payment_adapter() -> MockPaymentAdapter:
    return MockPaymentAdapter()


async def raw_body(request: Request) -> bytes:
    return await request.body()


@contextmanager
def service_errors(action: str, **context):
    """
    Translate service exceptions into HTTP errors. Anything unexpected is
    logged with the identifiers in `context` and returned as a generic 500.
    """
    try:
        yield
    except CartServiceException as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        log.exception(f"{action} failed {context}")
        raise HTTPException(
            status_code=500, detail=f"Internal server error: {type(e).__name__}"
        )
