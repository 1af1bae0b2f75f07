"""Dynamic State Logic Tests: LOGIC-001 through LOGIC-012."""

import pytest

from permstate.conslist import ConsList
from permstate.errors import FrozenStateError
from permstate.implications import (
    NullnessResult, ParameterConsequence, PermissionImplication, PermissionResult,
    StateImplication, StateResult,
)
from permstate.lattice import PermissionTuple
from permstate.logic import DynamicStateLogic
from permstate.permissions import PermissionKind, PermissionUse
from permstate.predicates import BooleanPredicate, NullPredicate, PermissionPredicate


def everything(loc):
    return True


class TestFreeze:
    """LOGIC-001: Freeze discipline and copies."""

    def test_new_value_is_mutable(self):
        assert not DynamicStateLogic().is_frozen()

    def test_freeze_returns_self(self):
        logic = DynamicStateLogic()
        assert logic.freeze() is logic
        assert logic.is_frozen()

    def test_copy_freezes(self):
        logic = DynamicStateLogic()
        assert logic.copy() is logic
        assert logic.is_frozen()

    def test_frozen_rejects_mutators(self, locs):
        logic = DynamicStateLogic().freeze()
        b, f = locs["b"], locs["f"]
        mutators = [
            lambda: logic.add_true_var_predicate(b),
            lambda: logic.add_false_var_predicate(b),
            lambda: logic.add_null_variable(b),
            lambda: logic.add_non_null_variable(b),
            lambda: logic.add_true_implication(b, f, "open"),
            lambda: logic.add_false_implication(b, f, "closed"),
            lambda: logic.add_null_implication(b, True, f, False),
            lambda: logic.add_equality(b, f),
            lambda: logic.add_inequality(b, f),
            lambda: logic.forget_temporary_state_in_implications(),
            lambda: logic.remove_variables(everything),
            lambda: logic.add_implication(b, StateImplication.true_var_implies(b, f, "open")),
            lambda: logic.add_implications([(b, StateImplication.true_var_implies(b, f, "open"))]),
            lambda: logic.add_predicates([(b, BooleanPredicate.true_of(b))]),
            lambda: logic.remove_implication(b, StateImplication.true_var_implies(b, f, "open")),
        ]
        for mutate in mutators:
            with pytest.raises(FrozenStateError):
                mutate()

    def test_frozen_error_is_structured(self, locs):
        logic = DynamicStateLogic().freeze()
        with pytest.raises(FrozenStateError) as info:
            logic.add_true_var_predicate(locs["b"])
        assert info.value.error.to_dict()["kind"] == "frozen_state"
        assert info.value.error.details["operation"] == "add_true_var_predicate"

    def test_mutable_copy_is_independent(self, locs):
        b, c = locs["b"], locs["c"]
        original = DynamicStateLogic()
        original.add_true_var_predicate(b)
        original.freeze()

        copy = original.mutable_copy()
        assert not copy.is_frozen()
        assert copy == original
        copy.add_false_var_predicate(c)
        assert copy.is_boolean_false(c)
        assert not original.is_boolean_false(c)

    def test_mutable_copy_shares_implication_lists(self, locs):
        b, f = locs["b"], locs["f"]
        original = DynamicStateLogic()
        original.add_true_implication(b, f, "open")
        copy = original.freeze().mutable_copy()
        assert copy.implications_of(b) is original.implications_of(b)

    def test_mutable_copy_keeps_ordering_mode(self):
        assert DynamicStateLogic(strict_ordering=True).mutable_copy().strict_ordering


class TestPredicates:
    """LOGIC-002: Known predicates and point queries."""

    def test_boolean_predicates(self, locs):
        logic = DynamicStateLogic()
        logic.add_true_var_predicate(locs["b"])
        logic.add_false_var_predicate(locs["c"])
        assert logic.is_boolean_true(locs["b"]) and not logic.is_boolean_false(locs["b"])
        assert logic.is_boolean_false(locs["c"]) and not logic.is_boolean_true(locs["c"])

    def test_null_predicates(self, locs):
        logic = DynamicStateLogic()
        logic.add_null_variable(locs["x"])
        logic.add_non_null_variable(locs["y"])
        assert logic.is_null(locs["x"]) and not logic.is_non_null(locs["x"])
        assert logic.is_non_null(locs["y"]) and not logic.is_null(locs["y"])

    def test_last_predicate_wins(self, locs):
        logic = DynamicStateLogic()
        logic.add_true_var_predicate(locs["b"])
        logic.add_false_var_predicate(locs["b"])
        assert logic.is_boolean_false(locs["b"])
        assert logic.known_predicate(locs["b"]) == BooleanPredicate.false_of(locs["b"])

    def test_unknown_location(self, locs):
        logic = DynamicStateLogic()
        assert logic.known_predicate(locs["b"]) is None
        assert not logic.is_boolean_true(locs["b"])
        assert not logic.is_null(locs["b"])
        assert logic.implications_of(locs["b"]).is_empty()

    def test_bulk_predicates(self, locs):
        logic = DynamicStateLogic()
        logic.add_predicates([(locs["b"], BooleanPredicate.true_of(locs["b"])),
                              (locs["x"], NullPredicate.null_of(locs["x"]))])
        assert logic.is_boolean_true(locs["b"])
        assert logic.is_null(locs["x"])
        assert logic.locations() == {locs["b"], locs["x"]}


class TestEquality:
    """LOGIC-003: Equality and inequality propagate facts."""

    def test_equality_copies_predicate(self, locs):
        logic = DynamicStateLogic()
        logic.add_true_var_predicate(locs["b"])
        logic.add_equality(locs["b"], locs["c"])
        assert logic.is_boolean_true(locs["c"])

    def test_inequality_negates_predicate(self, locs):
        logic = DynamicStateLogic()
        logic.add_true_var_predicate(locs["b"])
        logic.add_inequality(locs["b"], locs["c"])
        assert logic.is_boolean_false(locs["c"])

    def test_inequality_of_false_is_true(self, locs):
        logic = DynamicStateLogic()
        logic.add_false_var_predicate(locs["b"])
        logic.add_inequality(locs["b"], locs["c"])
        assert logic.is_boolean_true(locs["c"])

    def test_second_argument_is_used_when_first_unknown(self, locs):
        logic = DynamicStateLogic()
        logic.add_false_var_predicate(locs["c"])
        logic.add_equality(locs["b"], locs["c"])
        assert logic.is_boolean_false(locs["b"])

    def test_null_inequality(self, locs):
        logic = DynamicStateLogic()
        logic.add_null_variable(locs["x"])
        logic.add_inequality(locs["x"], locs["y"])
        assert logic.is_non_null(locs["y"])

    def test_nothing_known(self, locs):
        logic = DynamicStateLogic()
        logic.add_equality(locs["b"], locs["c"])
        assert logic.locations() == set()

    def test_equality_copies_implications(self, locs):
        b, c, f = locs["b"], locs["c"], locs["f"]
        logic = DynamicStateLogic()
        logic.add_true_implication(b, f, "open")
        logic.add_equality(b, c)
        logic.add_true_var_predicate(c)
        assert logic.solve_with_hint(PermissionTuple(), c) == [StateResult(f, "open")]

    def test_inequality_flips_implication_antecedent(self, locs):
        b, c, f = locs["b"], locs["c"], locs["f"]
        logic = DynamicStateLogic()
        logic.add_true_implication(b, f, "open")
        logic.add_inequality(b, c)
        logic.add_false_var_predicate(c)
        assert logic.solve_with_hint(PermissionTuple(), c) == [StateResult(f, "open")]
        assert len(logic.implications_of(b)) == 1


class TestSolve:
    """LOGIC-004: solve, solve_with_hint(s) and solve_filtered_variables."""

    def test_solve_discharges_matching_implications(self, locs):
        b, f = locs["b"], locs["f"]
        logic = DynamicStateLogic()
        logic.add_true_implication(b, f, "open")
        logic.add_false_implication(b, f, "closed")
        logic.add_true_var_predicate(b)
        assert logic.solve(PermissionTuple()) == [StateResult(f, "open")]

    def test_solve_needs_a_predicate(self, locs):
        logic = DynamicStateLogic()
        logic.add_true_implication(locs["b"], locs["f"], "open")
        assert logic.solve(PermissionTuple()) == []

    def test_results_name_their_source(self, locs):
        b, f = locs["b"], locs["f"]
        logic = DynamicStateLogic()
        logic.add_true_implication(b, f, "open")
        logic.add_true_var_predicate(b)
        (result,) = logic.solve(PermissionTuple())
        assert result.source == StateImplication.true_var_implies(b, f, "open")

    def test_hint_restricts_to_location(self, locs):
        b, c, f, x = locs["b"], locs["c"], locs["f"], locs["x"]
        logic = DynamicStateLogic()
        logic.add_true_implication(b, f, "open")
        logic.add_null_implication(c, True, x, True)
        logic.add_true_var_predicate(b)
        logic.add_true_var_predicate(c)
        snapshot = PermissionTuple()
        assert logic.solve_with_hint(snapshot, b) == [StateResult(f, "open")]
        assert logic.solve_with_hint(snapshot, c) == [NullnessResult(x, True)]
        assert logic.solve_with_hint(snapshot, f) == []
        assert len(logic.solve_with_hints(snapshot, b, c)) == 2
        assert logic.solve_with_hints(snapshot) == []

    def test_filter_excludes_dead_locations(self, locs):
        b, c, f = locs["b"], locs["c"], locs["f"]
        logic = DynamicStateLogic()
        logic.add_true_implication(b, f, "open")
        logic.add_true_implication(c, f, "closed")
        logic.add_true_var_predicate(b)
        logic.add_true_var_predicate(c)
        results = logic.solve_filtered_variables(PermissionTuple(), lambda loc: loc == c)
        assert results == [StateResult(f, "closed")]

    def test_filter_skips_matchable_without_predicate(self, locs):
        logic = DynamicStateLogic()
        logic.add_true_implication(locs["b"], locs["f"], "open")
        assert logic.solve_filtered_variables(PermissionTuple(), everything) == []


class TestLinearity:
    """LOGIC-005: Permission implications fire once and are retracted."""

    def _setup(self, locs, make_permission):
        r, p = locs["r"], locs["p"]
        pt = PermissionTuple()
        pt.put(r, make_permission(PermissionKind.FULL))
        wanted = make_permission(PermissionKind.FULL, usage=PermissionUse.FRAME)
        given = make_permission(PermissionKind.SHARE)
        impl = PermissionImplication(PermissionPredicate(r, wanted),
                                     (ParameterConsequence(p, given),))
        pt.logic.add_implication(r, impl)
        return pt, impl, wanted, given

    def test_fires_against_lattice(self, locs, make_permission):
        pt, impl, _, _ = self._setup(locs, make_permission)
        results = pt.logic.solve_filtered_variables(pt, everything)
        assert len(results) == 1
        assert isinstance(results[0], PermissionResult)
        assert results[0].source == impl

    def test_applying_consumes_and_retracts(self, locs, make_permission):
        r, p = locs["r"], locs["p"]
        pt, impl, wanted, given = self._setup(locs, make_permission)
        pt.apply_all(pt.logic.solve_filtered_variables(pt, everything))

        assert not pt.is_known_implication(r, impl)
        assert not pt.has_permission(r, wanted)
        assert pt.has_permission(p, given)
        assert pt.logic.solve_filtered_variables(pt, everything) == []

    def test_not_fired_without_permission(self, locs, make_permission):
        pt, _, _, _ = self._setup(locs, make_permission)
        pt.put(locs["r"], make_permission(PermissionKind.PURE))
        assert pt.logic.solve_filtered_variables(pt, everything) == []

    def test_remove_implication_removes_one_occurrence(self, locs):
        """An emptied implication list drops its location rather than staying as an empty entry."""
        b, f = locs["b"], locs["f"]
        impl = StateImplication.true_var_implies(b, f, "open")
        logic = DynamicStateLogic()
        logic.add_implication(b, impl)
        logic.add_implication(b, impl)
        logic.remove_implication(b, impl)
        assert logic.is_known_implication(b, impl)
        logic.remove_implication(b, impl)
        assert not logic.is_known_implication(b, impl)
        assert b not in logic.locations()

    def test_remove_unknown_implication_is_noop(self, locs):
        logic = DynamicStateLogic()
        logic.remove_implication(locs["b"], StateImplication.true_var_implies(locs["b"], locs["f"], "open"))
        assert logic.locations() == set()

    def test_find_implied_parameter(self, locs, make_permission):
        pt, impl, _, given = self._setup(locs, make_permission)
        found = pt.logic.find_implied_parameter(locs["r"], locs["p"])
        assert found == [ParameterConsequence(locs["p"], given)]
        assert pt.logic.find_implied_parameter(locs["r"], locs["x"]) == []


class TestForgetTemporaryState:
    """LOGIC-006: Forgetting temporary state in implications."""

    def test_untouched_lists_are_reused(self, locs):
        b, f = locs["b"], locs["f"]
        logic = DynamicStateLogic()
        logic.add_true_implication(b, f, "open")
        logic.add_false_implication(b, f, "closed")
        before = logic.implications_of(b)
        logic.forget_temporary_state_in_implications()
        assert logic.implications_of(b) is before

    def test_temporary_state_implications_dropped(self, locs):
        b, f = locs["b"], locs["f"]
        kept = StateImplication.true_var_implies(b, f, "open")
        logic = DynamicStateLogic()
        logic.add_implication(b, StateImplication.false_var_implies(b, f, "closed", temporary=True))
        logic.add_implication(b, kept)
        logic.forget_temporary_state_in_implications()
        assert logic.implications_of(b) == ConsList.of(kept)

    def test_order_is_preserved(self, locs):
        b, f = locs["b"], locs["f"]
        first = StateImplication.true_var_implies(b, f, "open")
        second = StateImplication.false_var_implies(b, f, "closed")
        logic = DynamicStateLogic()
        logic.add_implication(b, second)
        logic.add_implication(b, StateImplication.true_var_implies(b, f, "hasNext", temporary=True))
        logic.add_implication(b, first)
        logic.forget_temporary_state_in_implications()
        assert list(logic.implications_of(b)) == [first, second]

    def test_only_temporary_removes_location(self, locs):
        b, f = locs["b"], locs["f"]
        logic = DynamicStateLogic()
        logic.add_implication(b, StateImplication.true_var_implies(b, f, "open", temporary=True))
        logic.forget_temporary_state_in_implications()
        assert b not in logic.locations()

    def test_permission_consequence_states_stripped(self, locs, make_permission):
        r, p = locs["r"], locs["p"]
        given = make_permission(PermissionKind.SHARE)
        impl = PermissionImplication(
            PermissionPredicate(r, make_permission(PermissionKind.FULL)),
            (ParameterConsequence(p, given, frozenset({"open"})),),
        )
        logic = DynamicStateLogic()
        logic.add_implication(r, impl)
        logic.forget_temporary_state_in_implications()
        (sanitized,) = logic.implications_of(r)
        assert not sanitized.has_temporary_state()
        assert sanitized.consequences == (ParameterConsequence(p, given),)


class TestRemoveVariables:
    """LOGIC-007: Dropping locations that went out of scope."""

    def test_removes_predicates_and_implications(self, locs):
        b, c, f = locs["b"], locs["c"], locs["f"]
        logic = DynamicStateLogic()
        logic.add_true_var_predicate(b)
        logic.add_true_implication(b, f, "open")
        logic.add_false_var_predicate(c)
        logic.remove_variables(lambda loc: loc == b)
        assert logic.locations() == {c}
        assert logic.known_predicate(b) is None
        assert logic.implications_of(b).is_empty()


class TestJoin:
    """LOGIC-008: Join keeps what both paths agree on."""

    def test_intersection(self, locs):
        x, y = locs["x"], locs["y"]
        a = DynamicStateLogic()
        a.add_true_var_predicate(x)
        a.add_true_var_predicate(y)
        b = DynamicStateLogic()
        b.add_true_var_predicate(x)
        b.add_false_var_predicate(y)

        joined = a.join(b)
        assert joined.is_boolean_true(x)
        assert joined.known_predicate(y) is None
        assert a.is_frozen() and b.is_frozen()
        assert not joined.is_frozen()

    def test_same_value_or_none(self):
        a = DynamicStateLogic()
        assert a.join(a) is a
        assert a.join(None) is a
        assert a.is_frozen()

    def test_implication_lists_must_match(self, locs):
        b, f = locs["b"], locs["f"]
        a = DynamicStateLogic()
        a.add_true_implication(b, f, "open")
        other = a.freeze().mutable_copy()
        other.add_false_implication(b, f, "closed")
        assert a.join(other).implications_of(b).is_empty()
        assert a.join(a.mutable_copy()).implications_of(b) == a.implications_of(b)

    def test_join_keeps_ordering_mode(self):
        a = DynamicStateLogic(strict_ordering=True)
        assert a.join(DynamicStateLogic()).strict_ordering


class TestOrdering:
    """LOGIC-009: at_least_as_precise."""

    def test_more_facts_are_more_precise(self, locs):
        x, y = locs["x"], locs["y"]
        more = DynamicStateLogic()
        more.add_true_var_predicate(x)
        more.add_true_var_predicate(y)
        less = DynamicStateLogic()
        less.add_true_var_predicate(x)
        assert more.at_least_as_precise(less)
        assert not less.at_least_as_precise(more)

    def test_reflexive_and_none(self):
        a = DynamicStateLogic()
        assert a.at_least_as_precise(a)
        assert not a.at_least_as_precise(None)

    def _swapped(self, locs, strict):
        x, y, f = locs["x"], locs["y"], locs["f"]
        open_impl = StateImplication.true_var_implies(x, f, "open")
        closed_impl = StateImplication.true_var_implies(x, f, "closed")
        a = DynamicStateLogic(strict_ordering=strict)
        a.add_implication(x, open_impl)
        a.add_implication(y, closed_impl)
        b = DynamicStateLogic(strict_ordering=strict)
        b.add_implication(x, closed_impl)
        b.add_implication(y, open_impl)
        return a, b

    def test_value_set_approximation_accepts_swapped_entries(self, locs):
        a, b = self._swapped(locs, strict=False)
        assert a.at_least_as_precise(b)

    def test_strict_ordering_rejects_swapped_entries(self, locs):
        a, b = self._swapped(locs, strict=True)
        assert not a.at_least_as_precise(b)

    def test_from_config(self):
        class Config:
            strict_ordering = True
        assert DynamicStateLogic.from_config(Config()).strict_ordering


class TestBottom:
    """LOGIC-010: The unreachable value."""

    def test_bottom_is_frozen_singleton(self):
        bottom = DynamicStateLogic.bottom()
        assert bottom is DynamicStateLogic().bottom()
        assert bottom.is_bottom() and bottom.is_frozen()

    def test_mutable_copy_of_bottom(self):
        bottom = DynamicStateLogic.bottom()
        assert bottom.mutable_copy() is bottom

    def test_bottom_rejects_mutation(self, locs):
        with pytest.raises(FrozenStateError):
            DynamicStateLogic.bottom().add_true_var_predicate(locs["b"])

    def test_join_identity(self):
        bottom = DynamicStateLogic.bottom()
        x = DynamicStateLogic()
        assert bottom.join(x) is x
        assert x.join(bottom) is x

    def test_ordering(self):
        bottom = DynamicStateLogic.bottom()
        x = DynamicStateLogic()
        assert bottom.at_least_as_precise(x)
        assert not x.at_least_as_precise(bottom)

    def test_queries(self, locs):
        bottom = DynamicStateLogic.bottom()
        snapshot = PermissionTuple()
        assert not bottom.is_boolean_true(locs["b"])
        assert not bottom.is_null(locs["b"])
        assert bottom.solve(snapshot) == []
        assert bottom.solve_with_hint(snapshot, locs["b"]) == []
        assert bottom.solve_filtered_variables(snapshot, everything) == []
        assert bottom.locations() == set()
        assert str(bottom) == "BOTTOM"


class TestStateTestScenario:
    """LOGIC-011: A state test method checked across both branches."""

    def test_discharge_then_retract(self, locs):
        b, f = locs["b"], locs["f"]
        logic = DynamicStateLogic.empty()
        logic.add_true_implication(b, f, "open")
        logic.add_true_var_predicate(b)
        snapshot = PermissionTuple()
        (result,) = logic.solve(snapshot)
        assert result == StateResult(f, "open")
        logic.remove_implication(b, result.source)
        assert logic.solve(snapshot) == []

    def test_branches_and_merge(self, locs, file_hierarchy):
        b, f = locs["b"], locs["f"]
        entry = DynamicStateLogic()
        # b = f.isOpen()
        entry.add_true_implication(b, f, "open")
        entry.add_false_implication(b, f, "closed")
        entry.freeze()

        then_branch = entry.mutable_copy()
        then_branch.add_true_var_predicate(b)
        then_pt = PermissionTuple(logic=then_branch)
        then_pt.register_hierarchy(f, file_hierarchy)
        then_pt.propagate(b)
        assert then_pt.states_of(f) == {"open"}

        else_branch = entry.mutable_copy()
        else_branch.add_false_var_predicate(b)
        else_pt = PermissionTuple(logic=else_branch)
        else_pt.register_hierarchy(f, file_hierarchy)
        else_pt.propagate(b)
        assert else_pt.states_of(f) == {"closed"}

        merged = then_pt.logic.join(else_pt.logic)
        assert merged.known_predicate(b) is None
        assert merged.implications_of(b) == entry.implications_of(b)


class TestFormatting:
    """LOGIC-012: String forms."""

    def test_str_lists_facts(self, locs):
        b, f = locs["b"], locs["f"]
        logic = DynamicStateLogic()
        logic.add_true_var_predicate(b)
        logic.add_true_implication(b, f, "open")
        assert str(logic).splitlines() == ["{b} == true", "{b} == true => {f} in open"]

    def test_repr(self):
        assert "frozen=False" in repr(DynamicStateLogic())
