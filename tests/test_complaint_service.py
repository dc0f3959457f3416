"""
Tests for complaint create/update/read/delete.

Validates:
- Required fields and catalog references on create
- Numbering, price snapshot and creation-time history
- Update whitelist, price validation and the open-only price guard
- Replace-all satellites
- Apply-to-service as a best-effort side effect
- Batch registration, listing and deletion
"""

from unittest import mock

import pytest
from bson import ObjectId

from Models.complaints_models import (
    COMPLAINTS_COLLECTION, MISSING_PARTS_COLLECTION, COMPLAINT_MEDIA_COLLECTION,
    SERVICES_COLLECTION, TECHNICIANS_COLLECTION,
)
from services import complaint_service
from services.complaint_service import (
    create_complaint, create_batch, update_complaint, get_complaint, list_complaints,
    delete_complaint, change_complaint_status,
)
from utils.errors import InvalidArgument, NotFound, BusinessRuleViolation, Conflict


def _stored(db, complaint_id):
    return db[COMPLAINTS_COLLECTION].find_one({"_id": ObjectId(complaint_id)})


class TestCreateComplaint:

    def test_defaults_to_open(self, db, complaint_payload, employee):
        out = create_complaint(db, complaint_payload, actor=employee)
        c = out["complaint"]

        assert c["status"] == "open"
        assert c["opened_at"] is not None
        assert c["closed_at"] is None
        assert c["time_to_close_ms"] is None
        assert c["created_by"] == "user-employee"
        assert [h["status"] for h in c["status_history"]] == ["open"]
        assert c["complaint_no"].startswith("CMP-")

    def test_snapshots_service_prices(self, db, complaint_payload, service):
        c = create_complaint(db, complaint_payload)["complaint"]

        assert c["technician_price_charged"] == 350.0
        assert c["service_base_price_charged"] == 800.0

    def test_explicit_prices_win(self, db, complaint_payload):
        complaint_payload.update(technician_price_charged="420", service_base_price_charged=900)
        c = create_complaint(db, complaint_payload)["complaint"]

        assert c["technician_price_charged"] == 420.0
        assert c["service_base_price_charged"] == 900.0

    def test_supplied_complaint_no_is_kept(self, db, complaint_payload):
        complaint_payload["complaint_no"] = "MANUAL-1"
        assert create_complaint(db, complaint_payload)["complaint"]["complaint_no"] == "MANUAL-1"

    def test_numbers_are_sequential(self, db, complaint_payload):
        first = create_complaint(db, dict(complaint_payload))["complaint"]["complaint_no"]
        second = create_complaint(db, dict(complaint_payload))["complaint"]["complaint_no"]

        assert int(second.rsplit("-", 1)[1]) == int(first.rsplit("-", 1)[1]) + 1

    def test_accepts_service_and_technician_aliases(self, db, complaint_payload):
        complaint_payload["service"] = complaint_payload.pop("service_id")
        complaint_payload["technician"] = complaint_payload.pop("technician_id")

        c = create_complaint(db, complaint_payload)["complaint"]
        assert c["service_id"] == complaint_payload["service"]

    def test_created_closed_for_corrections(self, db, complaint_payload):
        complaint_payload["status"] = "closed"
        c = create_complaint(db, complaint_payload)["complaint"]

        assert c["status"] == "closed"
        assert c["closed_at"] is not None
        assert c["time_to_close_ms"] == 0
        assert [h["status"] for h in c["status_history"]] == ["closed"]

    @pytest.mark.parametrize("field", ["customer_name", "phone", "address", "service_id", "technician_id"])
    def test_required_fields(self, db, complaint_payload, field):
        complaint_payload[field] = "  " if field in ("customer_name", "phone", "address") else None

        with pytest.raises(InvalidArgument):
            create_complaint(db, complaint_payload)
        assert db[COMPLAINTS_COLLECTION].count_documents({}) == 0

    def test_unknown_service(self, db, complaint_payload):
        complaint_payload["service_id"] = str(ObjectId())

        with pytest.raises(NotFound):
            create_complaint(db, complaint_payload)

    def test_inactive_technician(self, db, complaint_payload, technician):
        db[TECHNICIANS_COLLECTION].update_one({"_id": technician["_id"]}, {"$set": {"is_active": False}})

        with pytest.raises(InvalidArgument):
            create_complaint(db, complaint_payload)

    def test_opened_at_is_kept_for_open(self, db, complaint_payload):
        complaint_payload["opened_at"] = "2025-11-07T09:00:00Z"
        c = create_complaint(db, complaint_payload)["complaint"]

        assert c["opened_at"] == "2025-11-07T09:00:00"

    @pytest.mark.parametrize("initial", ["pending_parts", "cancelled"])
    def test_opened_at_rejected_when_initial_status_has_no_clock(self, db, complaint_payload, initial):
        complaint_payload.update(status=initial, opened_at="2025-11-07T09:00:00Z")

        with pytest.raises(InvalidArgument):
            create_complaint(db, complaint_payload)
        assert db[COMPLAINTS_COLLECTION].count_documents({}) == 0

    def test_invalid_status_and_type(self, db, complaint_payload):
        with pytest.raises(InvalidArgument):
            create_complaint(db, {**complaint_payload, "status": "resolved"})
        with pytest.raises(InvalidArgument):
            create_complaint(db, {**complaint_payload, "complaint_type": "gold"})

    def test_satellites_are_saved_and_broken_media_dropped(self, db, complaint_payload):
        complaint_payload["missing_parts"] = [{"brand": "LG", "model": "X1", "part_name": "Compressor", "qty": 2}]
        complaint_payload["complaint_media"] = [
            {"media_url": "https://cdn.example/a.jpg"},
            {"provider_response": {"secure_url": "https://cdn.example/b.mp4"}},
            {"media_type": "image"},
        ]
        out = create_complaint(db, complaint_payload)

        assert [p["part_name"] for p in out["missing_parts"]] == ["Compressor"]
        assert [(m["media_type"], m["media_url"]) for m in out["media"]] == [
            ("image", "https://cdn.example/a.jpg"),
            ("video", "https://cdn.example/b.mp4"),
        ]
        assert db[COMPLAINT_MEDIA_COLLECTION].count_documents({}) == 2


@pytest.fixture
def complaint(db, complaint_payload, employee):
    return create_complaint(db, complaint_payload, actor=employee)["complaint"]


class TestUpdateComplaint:

    def test_unknown_and_derived_fields_ignored(self, db, complaint):
        before = _stored(db, complaint["id"])
        out = update_complaint(db, complaint["id"], {
            "remarks": "call before visit",
            "complaint_no": "HACKED",
            "closed_at": "2020-01-01T00:00:00",
            "time_to_close_ms": -5,
            "status_history": [],
            "whatever": 1,
        })
        after = _stored(db, complaint["id"])

        assert out["complaint"]["remarks"] == "call before visit"
        assert after["complaint_no"] == before["complaint_no"]
        assert after["closed_at"] is None
        assert after["status_history"] == before["status_history"]
        assert "whatever" not in after

    def test_status_routes_through_engine(self, db, complaint, admin):
        out = update_complaint(db, complaint["id"], {"status": "closed", "note": "fixed"}, actor=admin)
        c = out["complaint"]

        assert c["status"] == "closed"
        assert c["closed_at"] is not None
        assert c["time_to_close_ms"] is not None
        assert c["status_history"][-1] == {**c["status_history"][-1], "status": "closed", "note": "fixed",
                                           "by": "user-admin"}

    def test_price_edit_while_open(self, db, complaint):
        out = update_complaint(db, complaint["id"], {"technician_price_charged": "450"})
        assert out["complaint"]["technician_price_charged"] == 450.0

    def test_price_can_be_cleared_while_open(self, db, complaint):
        out = update_complaint(db, complaint["id"], {"technician_price_charged": ""})
        assert out["complaint"]["technician_price_charged"] is None

    def test_price_edit_rejected_when_closed(self, db, complaint):
        change_complaint_status(db, complaint["id"], "closed")
        before = _stored(db, complaint["id"])

        with pytest.raises(BusinessRuleViolation):
            update_complaint(db, complaint["id"], {"technician_price_charged": 999, "remarks": "x"})

        assert _stored(db, complaint["id"]) == before

    def test_price_guard_checks_stored_status(self, db, complaint):
        """Closing and pricing in one call is allowed while the stored status is open."""
        out = update_complaint(db, complaint["id"], {"technician_price_charged": 300, "status": "closed"})

        assert out["complaint"]["technician_price_charged"] == 300.0
        assert out["complaint"]["status"] == "closed"

    @pytest.mark.parametrize("value", [-1, "abc", float("nan"), True])
    def test_price_validation(self, db, complaint, value):
        with pytest.raises(InvalidArgument):
            update_complaint(db, complaint["id"], {"technician_price_charged": value})
        with pytest.raises(InvalidArgument):
            update_complaint(db, complaint["id"], {"service_base_price_charged": value})

    def test_base_price_editable_when_closed(self, db, complaint):
        change_complaint_status(db, complaint["id"], "closed")
        out = update_complaint(db, complaint["id"], {"service_base_price_charged": 1000})

        assert out["complaint"]["service_base_price_charged"] == 1000.0

    def test_reassign_to_unknown_technician(self, db, complaint):
        with pytest.raises(NotFound):
            update_complaint(db, complaint["id"], {"technician_id": str(ObjectId())})

    def test_required_fields_cannot_be_blanked(self, db, complaint):
        with pytest.raises(InvalidArgument):
            update_complaint(db, complaint["id"], {"customer_name": "   "})

    def test_missing_complaint(self, db):
        with pytest.raises(NotFound):
            update_complaint(db, str(ObjectId()), {"remarks": "x"})

    def test_updated_at_and_revision_move(self, db, complaint):
        before = _stored(db, complaint["id"])
        update_complaint(db, complaint["id"], {"remarks": "x"})
        after = _stored(db, complaint["id"])

        assert after["rev"] == before["rev"] + 1
        assert after["updated_at"] >= before["updated_at"]


class TestConcurrentUpdates:

    def test_close_between_read_and_write_blocks_price_edit(self, db, complaint, admin, monkeypatch):
        """A close that lands after the read turns the retried price edit into a rule violation."""
        real_filter = complaint_service.revision_filter
        raced = []

        def racing_filter(doc):
            if not raced:
                raced.append(change_complaint_status(db, complaint["id"], "closed", actor=admin))
            return real_filter(doc)

        monkeypatch.setattr(complaint_service, "revision_filter", racing_filter)

        with pytest.raises(BusinessRuleViolation):
            update_complaint(db, complaint["id"], {"technician_price_charged": 999})

        stored = _stored(db, complaint["id"])
        assert stored["status"] == "closed"
        assert stored["technician_price_charged"] == 350.0

    def test_loser_retries_plain_edit(self, db, complaint, admin, monkeypatch):
        """Edits that don't depend on status survive a concurrent close."""
        real_filter = complaint_service.revision_filter
        raced = []

        def racing_filter(doc):
            if not raced:
                raced.append(change_complaint_status(db, complaint["id"], "closed", actor=admin))
            return real_filter(doc)

        monkeypatch.setattr(complaint_service, "revision_filter", racing_filter)
        out = update_complaint(db, complaint["id"], {"remarks": "called customer"})

        assert out["complaint"]["remarks"] == "called customer"
        assert out["complaint"]["status"] == "closed"
        assert [h["status"] for h in out["complaint"]["status_history"]] == ["open", "closed"]

    def test_conflict_after_retries(self, db, complaint, monkeypatch):
        """If every attempt loses the race, the caller gets Conflict and our fields are never written."""
        real_filter = complaint_service.revision_filter

        def always_raced(doc):
            db[COMPLAINTS_COLLECTION].update_one({"_id": doc["_id"]}, {"$inc": {"rev": 1}})
            return real_filter(doc)

        monkeypatch.setattr(complaint_service, "revision_filter", always_raced)

        with pytest.raises(Conflict):
            update_complaint(db, complaint["id"], {"remarks": "lost", "status": "closed"})

        stored = _stored(db, complaint["id"])
        assert stored["remarks"] == ""
        assert stored["status"] == "open"
        assert len(stored["status_history"]) == 1


class TestSatelliteReplacement:

    def test_replace_all_parts(self, db, complaint):
        update_complaint(db, complaint["id"], {"missing_parts": [{"part_name": "Fan"}, {"part_name": "Belt"}]})
        out = update_complaint(db, complaint["id"], {"missing_parts": [{"part_name": "Motor", "qty": 3}]})

        assert [(p["part_name"], p["qty"]) for p in out["missing_parts"]] == [("Motor", 3)]
        assert db[MISSING_PARTS_COLLECTION].count_documents({"complaint_id": ObjectId(complaint["id"])}) == 1

    def test_empty_list_clears_and_absent_key_keeps(self, db, complaint):
        update_complaint(db, complaint["id"], {
            "missing_parts": [{"part_name": "Fan"}],
            "complaint_media": [{"media_url": "https://cdn.example/a.jpg"}],
        })
        out = update_complaint(db, complaint["id"], {"complaint_media": []})

        assert out["media"] == []
        assert [p["part_name"] for p in out["missing_parts"]] == ["Fan"]

    def test_invalid_qty(self, db, complaint):
        with pytest.raises(InvalidArgument):
            update_complaint(db, complaint["id"], {"missing_parts": [{"part_name": "Fan", "qty": 0}]})


class TestApplyToService:

    def test_scenario_apply_to_service(self, db, complaint, service, admin):
        out = update_complaint(db, complaint["id"], {
            "technician_price_charged": 500,
            "service_id": str(service["_id"]),
            "apply_to_service": True,
        }, actor=admin)

        assert out["applied_to_service"] is True
        assert out["complaint"]["technician_price_charged"] == 500.0
        assert db[SERVICES_COLLECTION].find_one({"_id": service["_id"]})["technician_price"] == 500.0

        # later catalog edits don't touch the complaint
        db[SERVICES_COLLECTION].update_one({"_id": service["_id"]}, {"$set": {"technician_price": 999.0}})
        assert get_complaint(db, complaint["id"])["complaint"]["technician_price_charged"] == 500.0

    def test_requires_service_id_in_payload(self, db, complaint, service):
        out = update_complaint(db, complaint["id"], {"technician_price_charged": 500, "apply_to_service": True})

        assert out["applied_to_service"] is False
        assert db[SERVICES_COLLECTION].find_one({"_id": service["_id"]})["technician_price"] == 350.0

    def test_not_requested(self, db, complaint):
        out = update_complaint(db, complaint["id"], {"remarks": "x"})
        assert out["applied_to_service"] is None

    def test_failure_does_not_roll_back(self, db, complaint, service, monkeypatch):
        monkeypatch.setattr(
            complaint_service, "apply_price_to_service",
            mock.Mock(wraps=lambda *a, **k: False),
        )
        out = update_complaint(db, complaint["id"], {
            "technician_price_charged": 610,
            "service_id": str(service["_id"]),
            "apply_to_service": True,
        })

        assert out["applied_to_service"] is False
        assert _stored(db, complaint["id"])["technician_price_charged"] == 610.0


class TestBatchListDelete:

    def test_batch_shares_group_and_contiguous_numbers(self, db, complaint_payload, other_service, employee):
        second = {**complaint_payload, "service_id": str(other_service["_id"])}
        out = create_batch(db, [complaint_payload, second], actor=employee)

        numbers = [c["complaint"]["complaint_no"] for c in out["created"]]
        seqs = [int(n.rsplit("-", 1)[1]) for n in numbers]
        assert seqs[1] == seqs[0] + 1
        assert {c["complaint"]["group_id"] for c in out["created"]} == {out["group_id"]}
        assert out["created"][1]["complaint"]["technician_price_charged"] == 250.0

    def test_batch_validates_everything_first(self, db, complaint_payload):
        bad = {**complaint_payload, "service_id": str(ObjectId())}

        with pytest.raises(NotFound):
            create_batch(db, [complaint_payload, bad])
        assert db[COMPLAINTS_COLLECTION].count_documents({}) == 0

    def test_empty_batch(self, db):
        with pytest.raises(InvalidArgument):
            create_batch(db, [])

    def test_list_filters_by_status(self, db, complaint_payload, technician):
        first = create_complaint(db, dict(complaint_payload))["complaint"]
        create_complaint(db, dict(complaint_payload))
        change_complaint_status(db, first["id"], "closed")

        closed = list_complaints(db, status="closed")
        assert [c["id"] for c in closed] == [first["id"]]
        assert closed[0]["time_to_close_readable"].endswith("s")
        assert len(list_complaints(db, technician_id=str(technician["_id"]))) == 2
        with pytest.raises(InvalidArgument):
            list_complaints(db, status="bogus")

    def test_get_returns_aggregate(self, db, complaint):
        update_complaint(db, complaint["id"], {"missing_parts": [{"part_name": "Fan"}]})
        out = get_complaint(db, complaint["id"])

        assert set(out) == {"complaint", "missing_parts", "media"}
        assert out["missing_parts"][0]["complaint_id"] == complaint["id"]

    def test_delete_removes_satellites(self, db, complaint):
        update_complaint(db, complaint["id"], {"missing_parts": [{"part_name": "Fan"}]})
        delete_complaint(db, complaint["id"])

        assert db[COMPLAINTS_COLLECTION].count_documents({}) == 0
        assert db[MISSING_PARTS_COLLECTION].count_documents({}) == 0
        with pytest.raises(NotFound):
            delete_complaint(db, complaint["id"])
