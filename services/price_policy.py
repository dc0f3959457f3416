# services/price_policy.py
import logging

from pymongo.errors import PyMongoError

from Models.complaints_models import SERVICES_COLLECTION
from utils.date_utils import utcnow
from utils.errors import ComplaintError
from utils.mongo_helpers import to_object_id

logger = logging.getLogger(__name__)


def apply_price_to_service(db, service_id, technician_price) -> bool:
    """
    Copy a complaint's charged technician price into the service's default.

    Runs after the complaint write has committed and never raises: a failure
    here is logged and reported as ``False``, the complaint update stands.
    """
    try:
        oid = to_object_id(service_id, "service_id")
        result = db[SERVICES_COLLECTION].update_one(
            {"_id": oid},
            {"$set": {"technician_price": float(technician_price), "updated_at": utcnow()}},
        )
    except (ComplaintError, PyMongoError, TypeError, ValueError) as e:
        logger.error(f"[apply_to_service] failed for service {service_id}: {e}")
        return False

    if result.matched_count == 0:
        logger.warning(f"[apply_to_service] service {service_id} not found; price not applied")
        return False

    logger.info(f"[apply_to_service] service {service_id} technician_price -> {technician_price}")
    return True
