# services/reference_service.py
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Tuple

from api_client import ApiClient, SessionExpiredError
from data_integrator import fetch_products, fetch_routes, fetch_staff, fetch_trucks
from domain.models import Product, ReferenceData

logger = logging.getLogger(__name__)

REFERENCE_LOADERS: Dict[str, Callable[[ApiClient], Tuple[bool, str, list]]] = {
    "trucks": fetch_trucks,
    "routes": fetch_routes,
    "staff": fetch_staff,
    "products": fetch_products,
}


def load_reference_data(client: ApiClient) -> ReferenceData:
    """
    Fetch trucks, routes, staff and products concurrently and join them.

    A failed source comes back as an empty list and is recorded in
    `failures`; the other sources are still returned. Nothing is
    substituted for missing data, callers check `degraded` instead.
    Only SessionExpiredError escapes.

    Each worker gets its own client; all of them share the operator's
    ApiSession, so a 401 in any worker ends the session for every page.
    """
    results: Dict[str, list] = {}
    failures: Dict[str, str] = {}

    with ThreadPoolExecutor(max_workers=len(REFERENCE_LOADERS)) as pool:
        futures = {
            name: pool.submit(loader, client.clone())
            for name, loader in REFERENCE_LOADERS.items()
        }
        for name, future in futures.items():
            try:
                ok, msg, data = future.result()
            except SessionExpiredError:
                raise
            except Exception as e:
                # a malformed row fails only its own source
                logger.exception("Reference source %s could not be read", name)
                ok, msg, data = False, f"Could not read {name}: {e}", []
            if not ok:
                logger.warning("Reference source %s unavailable: %s", name, msg)
                failures[name] = msg
            results[name] = data if ok else []

    logger.info(
        "Reference data loaded: %s",
        ", ".join(f"{name}={len(rows)}" for name, rows in results.items()),
    )

    return ReferenceData(
        trucks=results["trucks"],
        routes=results["routes"],
        staff=results["staff"],
        products=results["products"],
        failures=failures,
    )


def load_products(client: ApiClient, active_only: bool = True) -> Tuple[bool, str, List[Product]]:
    ok, msg, products = fetch_products(client, active_only=active_only)
    if not ok:
        logger.warning("Products unavailable: %s", msg)
    return ok, msg, products
