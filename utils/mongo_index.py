# utils/mongo_index.py
from typing import Optional

from pymongo.errors import OperationFailure


def ensure_index(
        coll,
        keys,
        name: str,
        *,
        unique: Optional[bool] = None,
        expire_after_seconds: Optional[int] = None,
        drop_if_mismatch: bool = False,
):
    """
    Create an index if it doesn't exist. If an index with the same name exists
    but differs (keys, unique flag or TTL), optionally drop & recreate.
    """
    info = coll.index_information()
    if name in info:
        spec = info[name]
        existing_keys = [(k, d) for k, d in spec["key"]]
        existing_unique = bool(spec.get("unique", False))
        desired_unique = bool(unique) if unique is not None else False
        existing_ttl = spec.get("expireAfterSeconds")

        if existing_keys == list(keys) and existing_unique == desired_unique and existing_ttl == expire_after_seconds:
            return  # already correct

        if drop_if_mismatch:
            try:
                coll.drop_index(name)
            except OperationFailure:
                pass
        else:
            return  # mismatch but do nothing to avoid startup crash

    extra = {}
    if expire_after_seconds is not None:
        extra["expireAfterSeconds"] = expire_after_seconds
    coll.create_index(keys, name=name, unique=(unique or False), **extra)
