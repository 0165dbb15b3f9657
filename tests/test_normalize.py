from datetime import datetime

import pytest
from bson import ObjectId

from docauth.core.normalize import (
    PayloadKind,
    normalize,
    normalize_document,
    normalize_filter,
    normalize_insert_document,
    normalize_projection,
    normalize_replacement,
    normalize_sort,
    normalize_update_payload,
)
from docauth.errors import ValidationError

OID = "65a1b2c3d4e5f60718293a4b"


def test_filter_rejects_non_objects():
    assert normalize_filter(None) == {}
    assert normalize_filter(["id", OID]) == {}
    assert normalize_filter("email") == {}


def test_filter_renames_and_coerces_id():
    out = normalize_filter({"id": OID, "email": "a@b.com"})
    assert out == {"_id": ObjectId(OID), "email": "a@b.com"}


def test_filter_keeps_malformed_id_as_string():
    assert normalize_filter({"id": "not-a-valid-id"}) == {"_id": "not-a-valid-id"}


def test_filter_passes_operators_through():
    flt = {"id": {"$in": [OID]}, "age": {"$gt": 3}}
    out = normalize_filter(flt)
    assert out == {"_id": {"$in": [OID]}, "age": {"$gt": 3}}
    assert "id" in flt  # input untouched


def test_filter_explicit_native_key_wins():
    assert normalize_filter({"id": OID, "_id": "x"}) == {"_id": "x"}


def test_insert_document_stamps_timestamps():
    out = normalize_insert_document({"email": "a@b.com"})
    assert isinstance(out["createdAt"], datetime)
    assert out["createdAt"] == out["updatedAt"]
    assert "_id" not in out


def test_insert_document_keeps_caller_timestamps():
    ts = datetime(2020, 1, 1)
    out = normalize_insert_document({"createdAt": ts})
    assert out["createdAt"] == ts
    assert out["updatedAt"] != ts


def test_insert_document_promotes_valid_id():
    out = normalize_insert_document({"id": OID})
    assert out["_id"] == ObjectId(OID)
    assert "id" not in out


def test_insert_document_refuses_invalid_id():
    with pytest.raises(ValidationError):
        normalize_insert_document({"id": "nope"})


def test_insert_document_strips_id_when_native_key_present():
    out = normalize_insert_document({"id": "ignored", "_id": 7})
    assert out["_id"] == 7
    assert "id" not in out


def test_update_wraps_plain_payload():
    out = normalize_update_payload({"name": "x"})
    assert set(out) == {"$set"}
    assert out["$set"]["name"] == "x"
    assert isinstance(out["$set"]["updatedAt"], datetime)


def test_update_timestamps_strictly_increase():
    first = normalize_update_payload({"name": "x"})["$set"]["updatedAt"]
    second = normalize_update_payload({"name": "x"})["$set"]["updatedAt"]
    assert second > first


def test_update_merges_into_existing_set():
    out = normalize_update_payload({"$set": {"email": "n@x.com"}, "$inc": {"logins": 1}})
    assert out["$inc"] == {"logins": 1}
    assert out["$set"]["email"] == "n@x.com"
    assert "updatedAt" in out["$set"]


def test_update_adds_set_to_operator_payload():
    out = normalize_update_payload({"$unset": {"name": ""}})
    assert out["$unset"] == {"name": ""}
    assert list(out["$set"]) == ["updatedAt"]


def test_update_keeps_caller_updated_at():
    ts = datetime(2021, 5, 5)
    assert normalize_update_payload({"$set": {"updatedAt": ts}})["$set"]["updatedAt"] == ts
    assert normalize_update_payload({"updatedAt": ts})["$set"]["updatedAt"] == ts


def test_update_never_writes_client_id():
    out = normalize_update_payload({"id": OID, "name": "x"})
    assert "id" not in out["$set"]


def test_update_non_object_only_touches_timestamp():
    out = normalize_update_payload(None)
    assert list(out["$set"]) == ["updatedAt"]


def test_replacement_is_insert_shaped():
    out = normalize_replacement({"email": "r@x.com"})
    assert "createdAt" in out and "updatedAt" in out


def test_document_output_exposes_string_id():
    oid = ObjectId(OID)
    assert normalize_document({"_id": oid, "email": "a"}) == {"id": OID, "email": "a"}


def test_document_output_pass_through():
    assert normalize_document(None) is None
    assert normalize_document({}) == {}
    assert normalize_document("x") == "x"
    assert normalize_document({"email": "a"}) == {"email": "a"}


def test_projection_and_sort_rename_id():
    assert normalize_projection({"id": 1, "email": 1}) == {"email": 1, "_id": 1}
    assert normalize_sort({"id": -1, "createdAt": 1}) == [("_id", -1), ("createdAt", 1)]
    assert normalize_sort(None) == []


def test_sort_rejects_bad_direction():
    with pytest.raises(ValidationError):
        normalize_sort({"createdAt": 2})
    with pytest.raises(ValidationError):
        normalize_sort({"createdAt": "desc"})


def test_dispatch_by_kind():
    assert normalize(PayloadKind.FILTER, {"id": OID}) == {"_id": ObjectId(OID)}
    assert "$set" in normalize("update", {"a": 1})


def test_update_rejects_mixed_operator_and_plain_fields():
    with pytest.raises(ValidationError):
        normalize_update_payload({"name": "x", "$inc": {"n": 1}})


def test_projection_accepts_only_flags():
    assert normalize_projection({"email": True, "createdAt": 0}) == {"email": True, "createdAt": 0}
    with pytest.raises(ValidationError):
        normalize_projection({"h": "$passwordHash"})
    with pytest.raises(ValidationError):
        normalize_projection({"h": {"$concat": ["$passwordHash"]}})
    with pytest.raises(ValidationError):
        normalize_projection({"email": 2})
