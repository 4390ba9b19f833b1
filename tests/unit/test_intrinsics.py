from __future__ import annotations

from typing import Any

import pytest

from deploy_orchestrator.engine.intrinsics import (
    UNKNOWN,
    IntrinsicError,
    collect_references,
    contains_unknown,
    intrinsic_name,
    resolve_references,
    substitute_static,
)

MAPPINGS = {"SubnetConfig": {"VPC": {"CIDR": "10.0.0.0/16"}, "PublicOne": {"CIDR": "10.0.0.0/24"}}}


def _ref(name: str) -> Any:
    return f"id-{name}"


def _get_att(name: str, attr: str) -> Any:
    return f"{name}.{attr}"


class TestIntrinsicName:
    def test_ref(self) -> None:
        assert intrinsic_name({"Ref": "A"}) == "Ref"

    def test_fn_prefix(self) -> None:
        assert intrinsic_name({"Fn::Sub": "x"}) == "Fn::Sub"

    def test_plain_mapping_is_not_intrinsic(self) -> None:
        assert intrinsic_name({"Ref": "A", "other": 1}) is None
        assert intrinsic_name({"name": "A"}) is None
        assert intrinsic_name("Ref") is None


class TestSubstituteStatic:
    def test_parameter_ref_is_replaced(self) -> None:
        assert substitute_static({"Ref": "Env"}, {"Env": "prod"}, {}) == "prod"

    def test_resource_ref_is_kept(self) -> None:
        assert substitute_static({"Ref": "Vpc"}, {}, {}) == {"Ref": "Vpc"}

    def test_find_in_map(self) -> None:
        value = {"cidr": {"Fn::FindInMap": ["SubnetConfig", "VPC", "CIDR"]}}
        assert substitute_static(value, {}, MAPPINGS) == {"cidr": "10.0.0.0/16"}

    def test_find_in_map_with_parameter_key(self) -> None:
        value = {"Fn::FindInMap": ["SubnetConfig", {"Ref": "Subnet"}, "CIDR"]}
        assert substitute_static(value, {"Subnet": "PublicOne"}, MAPPINGS) == "10.0.0.0/24"

    def test_find_in_map_missing_key(self) -> None:
        with pytest.raises(IntrinsicError, match="lookup failed"):
            substitute_static({"Fn::FindInMap": ["SubnetConfig", "Nope", "CIDR"]}, {}, MAPPINGS)

    def test_join_substitutes_parts(self) -> None:
        value = {"Fn::Join": ["-", [{"Ref": "Env"}, {"Ref": "Vpc"}]]}
        assert substitute_static(value, {"Env": "prod"}, {}) == {
            "Fn::Join": ["-", ["prod", {"Ref": "Vpc"}]]
        }

    def test_unsupported_function(self) -> None:
        with pytest.raises(IntrinsicError, match="Unsupported"):
            substitute_static({"Fn::Sub": "${Env}"}, {}, {})

    def test_malformed_get_att(self) -> None:
        with pytest.raises(IntrinsicError):
            substitute_static({"Fn::GetAtt": "NoDot"}, {}, {})

    def test_nested_lists(self) -> None:
        assert substitute_static([[{"Ref": "Env"}]], {"Env": "x"}, {}) == [["x"]]

    @pytest.mark.parametrize("value", [{"Fn::GetAtt": ["A", ""]}, {"Fn::GetAtt": ["", "arn"]}])
    def test_get_att_needs_name_and_attribute(self, value: dict[str, Any]) -> None:
        with pytest.raises(IntrinsicError, match="GetAtt"):
            substitute_static(value, {}, {})

    def test_select_from_literal_list(self) -> None:
        assert substitute_static({"Fn::Select": [1, ["a", "b", "c"]]}, {}, {}) == "b"

    def test_select_from_list_parameter(self) -> None:
        value = {"Fn::Select": ["0", {"Ref": "Zones"}]}
        assert substitute_static(value, {"Zones": ["eu-1a", "eu-1b"]}, {}) == "eu-1a"

    def test_select_can_pick_a_resource_ref(self) -> None:
        value = {"Fn::Select": [0, [{"Ref": "Vpc"}, "x"]]}
        assert substitute_static(value, {}, {}) == {"Ref": "Vpc"}

    def test_select_over_resource_value_is_deferred(self) -> None:
        value = {"Fn::Select": [2, {"Fn::GetAtt": ["Vpc", "zones"]}]}
        assert substitute_static(value, {}, {}) == value

    def test_select_index_out_of_range(self) -> None:
        with pytest.raises(IntrinsicError, match="out of range"):
            substitute_static({"Fn::Select": [3, ["a", "b"]]}, {}, {})

    @pytest.mark.parametrize("args", [[-1, ["a"]], [True, ["a"]], ["first", ["a"]], [0], "0,a"])
    def test_malformed_select(self, args: Any) -> None:
        with pytest.raises(IntrinsicError, match="Select"):
            substitute_static({"Fn::Select": args}, {}, {})


class TestCollectReferences:
    def test_first_seen_order_without_duplicates(self) -> None:
        value = {
            "a": {"Ref": "B"},
            "b": [{"Fn::GetAtt": ["A", "arn"]}, {"Ref": "B"}],
            "c": {"Fn::GetAtt": "C.id"},
        }
        assert collect_references(value) == ["B", "A", "C"]

    def test_refs_inside_join(self) -> None:
        value = {"Fn::Join": [",", [{"Ref": "A"}, "lit"]]}
        assert collect_references(value) == ["A"]


class TestResolveReferences:
    def test_ref_and_get_att(self) -> None:
        value = {"id": {"Ref": "A"}, "arn": {"Fn::GetAtt": ["B", "arn"]}}
        assert resolve_references(value, _ref, _get_att) == {"id": "id-A", "arn": "B.arn"}

    def test_join(self) -> None:
        value = {"Fn::Join": ["/", ["root", {"Ref": "A"}, 3]]}
        assert resolve_references(value, _ref, _get_att) == "root/id-A/3"

    def test_join_over_unknown_is_unknown(self) -> None:
        value = {"Fn::Join": ["/", ["root", {"Ref": "A"}]]}
        assert resolve_references(value, lambda _n: UNKNOWN, _get_att) == UNKNOWN

    def test_select_over_resolved_list(self) -> None:
        value = {"Fn::Select": [1, {"Fn::GetAtt": ["Vpc", "zones"]}]}
        assert resolve_references(value, _ref, lambda _n, _a: ["z1", "z2"]) == "z2"

    def test_select_over_unknown_is_unknown(self) -> None:
        value = {"Fn::Select": [0, {"Fn::GetAtt": ["Vpc", "zones"]}]}
        assert resolve_references(value, _ref, lambda _n, _a: UNKNOWN) == UNKNOWN

    def test_select_out_of_range_after_apply(self) -> None:
        value = {"Fn::Select": [5, {"Fn::GetAtt": ["Vpc", "zones"]}]}
        with pytest.raises(IntrinsicError, match="out of range"):
            resolve_references(value, _ref, lambda _n, _a: ["z1"])

    def test_refs_inside_select_are_collected(self) -> None:
        value = {"Fn::Select": [0, {"Fn::GetAtt": ["Vpc", "zones"]}]}
        assert collect_references(value) == ["Vpc"]

    def test_contains_unknown(self) -> None:
        assert contains_unknown({"a": [1, {"b": UNKNOWN}]})
        assert not contains_unknown({"a": [1, {"b": "known"}]})
