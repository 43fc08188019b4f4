"""Tests for the operation <-> permission mapping table."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from iamreach.analysis.permissions import PermissionMap, load_bundled_map
from iamreach.errors import DatasetError


def make_map(mappings: dict[str, list[str]]) -> PermissionMap:
    return PermissionMap.from_dict({
        "sdk_method_iam_mappings": {
            op: [{"action": a} for a in actions] for op, actions in mappings.items()
        },
    })


class TestForwardLookup:
    def test_case_insensitive(self):
        pmap = make_map({"SSM.GetParameter": ["ssm:GetParameter"]})
        assert pmap.to_permissions("ssm.GetParameter") == ("ssm:GetParameter",)
        assert pmap.to_permissions("SSM.getparameter") == ("ssm:GetParameter",)

    def test_unknown_operation_needs_nothing(self):
        pmap = make_map({"SSM.GetParameter": ["ssm:GetParameter"]})
        assert pmap.to_permissions("sts.GetCallerIdentity") == ()

    def test_no_wildcards(self):
        pmap = make_map({"SSM.GetParameter": ["ssm:GetParameter"]})
        assert pmap.to_permissions("ssm.Get*") == ()
        assert pmap.to_permissions("ssm.GetParam") == ()

    def test_several_actions(self):
        pmap = make_map({"Lambda.CreateFunction": ["lambda:CreateFunction", "iam:PassRole"]})
        assert pmap.to_permissions("lambda.CreateFunction") == (
            "lambda:CreateFunction", "iam:PassRole",
        )

    def test_duplicate_records_collapse(self):
        pmap = make_map({"S3.GetObject": ["s3:GetObject", "s3:GetObject"]})
        assert pmap.to_permissions("s3.GetObject") == ("s3:GetObject",)

    def test_extra_record_fields_allowed(self):
        pmap = PermissionMap.from_dict({"sdk_method_iam_mappings": {
            "S3.GetObject": [{"action": "s3:GetObject", "resource_mappings": {"Bucket": {}},
                              "resourcearn_mappings": {}}],
        }})
        assert pmap.to_permissions("s3.GetObject") == ("s3:GetObject",)


class TestCaseTieBreak:
    def test_exact_case_wins(self):
        pmap = make_map({"svc.Get": ["svc:Lower"], "SVC.Get": ["svc:Upper"]})
        assert pmap.to_permissions("svc.Get") == ("svc:Lower",)
        assert pmap.to_permissions("SVC.Get") == ("svc:Upper",)

    def test_otherwise_lexicographic_first(self):
        pmap = make_map({"svc.Get": ["svc:Lower"], "SVC.Get": ["svc:Upper"]})
        assert pmap.resolve_operation("Svc.get") == "SVC.Get"
        assert pmap.to_permissions("Svc.get") == ("svc:Upper",)

    def test_independent_of_dataset_order(self):
        a = make_map({"svc.Get": ["svc:Lower"], "SVC.Get": ["svc:Upper"]})
        b = make_map({"SVC.Get": ["svc:Upper"], "svc.Get": ["svc:Lower"]})
        assert a.to_permissions("sVc.GET") == b.to_permissions("sVc.GET")


class TestReverseLookup:
    def test_case_insensitive(self):
        pmap = make_map({"SSM.GetParameter": ["ssm:GetParameter"]})
        assert pmap.to_operations("SSM:getparameter") == ("SSM.GetParameter",)

    def test_several_operations_sorted(self):
        pmap = make_map({
            "S3.HeadObject": ["s3:GetObject"],
            "S3.GetObject": ["s3:GetObject"],
            "S3.CopyObject": ["s3:GetObject", "s3:PutObject"],
        })
        assert pmap.to_operations("s3:GetObject") == (
            "S3.CopyObject", "S3.GetObject", "S3.HeadObject",
        )

    def test_unknown_action(self):
        assert make_map({}).to_operations("s3:GetObject") == ()


class TestPrecomputedLookups:
    def test_forward_lookup_returns_shared_tuple(self):
        pmap = make_map({"S3.CopyObject": ["s3:GetObject", "s3:PutObject"]})
        first = pmap.to_permissions("s3.CopyObject")
        assert isinstance(first, tuple)
        assert pmap.to_permissions("S3.COPYOBJECT") is first

    def test_reverse_lookup_returns_shared_tuple(self):
        pmap = make_map({"S3.GetObject": ["s3:GetObject"], "S3.HeadObject": ["s3:GetObject"]})
        first = pmap.to_operations("s3:GetObject")
        assert isinstance(first, tuple)
        assert pmap.to_operations("S3:GETOBJECT") is first

    def test_round_trip_on_bundled_dataset(self):
        pmap = load_bundled_map()
        assert len(pmap) > 0
        for operation in pmap.operations():
            for action in pmap.to_permissions(operation):
                assert operation in pmap.to_operations(action)


class TestLoading:
    def test_bundled_map_loaded_once(self):
        assert load_bundled_map() is load_bundled_map()

    def test_bundled_map_content(self):
        pmap = load_bundled_map()
        assert pmap.to_permissions("ssm.GetParameter") == ("ssm:GetParameter",)
        assert "SSM.GetParameter" in pmap

    def test_from_file(self, tmp_path: Path):
        p = tmp_path / "map.json"
        p.write_text(json.dumps({"sdk_method_iam_mappings": {"svc.Get": [{"action": "svc:GetResource"}]}}))
        assert PermissionMap.from_file(p).to_permissions("svc.Get") == ("svc:GetResource",)

    def test_missing_action(self):
        with pytest.raises(DatasetError, match="malformed"):
            PermissionMap.from_dict({"sdk_method_iam_mappings": {"svc.Get": [{"resource": "x"}]}})

    def test_invalid_json(self, tmp_path: Path):
        p = tmp_path / "map.json"
        p.write_text("[")
        with pytest.raises(DatasetError, match="not valid JSON"):
            PermissionMap.from_file(p)

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(DatasetError, match="cannot read"):
            PermissionMap.from_file(tmp_path / "nope.json")
