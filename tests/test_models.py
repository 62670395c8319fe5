"""Tests for Variable, Edge and Model."""

import pytest
from pydantic import ValidationError

from modelit._errors import FormulaParseError, MissingVariableError, VariableInUseError
from modelit._kinds import EdgeKind, VariableKind
from modelit._models import Edge, EdgeMetadata, Model, Variable, formula_edges

# --- Fixtures ---


@pytest.fixture
def cashflow() -> Model:
    model = Model(name="cashflow")
    model.add_variable(Variable(name="REVENUE", kind=VariableKind.PARAMETER, values=(100, 100, 100)))
    model.add_variable(Variable(name="EXPENSES", values=(50, 50, 50)))
    model.add_variable(Variable(name="CASH", formula="CASH[t-1] + REVENUE[t] - EXPENSES[t]", values=(1000,)))
    return model


class TestVariable:
    def test_dependencies_are_derived_from_formula(self) -> None:
        variable = Variable(name="EBITDA", formula="REVENUE - COGS", dependencies=("IGNORED",))
        assert variable.dependencies == ("COGS", "REVENUE")

    def test_supplied_dependencies_kept_without_formula(self) -> None:
        variable = Variable(name="X", dependencies=("A",))
        assert variable.dependencies == ("A",)

    def test_blank_formula_is_no_formula(self) -> None:
        variable = Variable(name="X", formula="   ")
        assert variable.formula is None
        assert not variable.has_formula

    def test_malformed_formula_raises(self) -> None:
        with pytest.raises(FormulaParseError) as excinfo:
            Variable(name="BAD", formula="A +")
        assert excinfo.value.variable == "BAD"

    def test_name_must_be_identifier(self) -> None:
        with pytest.raises(ValidationError):
            Variable(name="not valid")

    def test_kind_defaults_to_scalar(self) -> None:
        assert Variable(name="X").kind == VariableKind.SCALAR

    def test_time_dependence(self) -> None:
        assert Variable(name="CASH", formula="CASH[t-1] + 1").is_time_dependent
        assert not Variable(name="COGS", formula="REVENUE * 0.3").is_time_dependent
        assert not Variable(name="SEEDED", values=(1.0,)).is_time_dependent

    def test_variables_are_immutable(self) -> None:
        variable = Variable(name="X")
        with pytest.raises(ValidationError):
            variable.name = "Y"  # type: ignore[misc]


class TestEdge:
    def test_defaults(self) -> None:
        edge = Edge(id="e1", source="A", target="B")
        assert edge.kind == EdgeKind.DEPENDENCY
        assert edge.strength == 1.0
        assert edge.confidence == 1.0
        assert edge.lag == 0
        assert not edge.is_temporal()

    def test_strength_must_be_within_unit_interval(self) -> None:
        with pytest.raises(ValidationError):
            EdgeMetadata(strength=1.5)

    def test_temporal_factory(self) -> None:
        edge = Edge.temporal("CASH", "CASH", lag=1)
        assert edge.id == "CASH-temporal-CASH"
        assert edge.is_temporal()
        assert edge.lag == 1
        assert edge.issues() == []

    def test_issues(self) -> None:
        edge = Edge(id="e1", source="A", target="A", kind=EdgeKind.TEMPORAL)
        assert edge.issues() == ["Edge 'e1': lag must be specified for temporal edges"]
        self_loop = Edge(id="e2", source="A", target="A")
        assert self_loop.issues() == ["Edge 'e2': only temporal edges may connect a variable to itself"]


class TestModelMutation:
    def test_add_and_get(self, cashflow: Model) -> None:
        assert len(cashflow) == 3
        assert "CASH" in cashflow
        assert cashflow.get_variable("CASH").values == (1000.0,)

    def test_get_missing_raises(self, cashflow: Model) -> None:
        with pytest.raises(MissingVariableError, match="Variable 'NOPE' not found"):
            cashflow.get_variable("NOPE")

    def test_add_duplicate_raises(self, cashflow: Model) -> None:
        with pytest.raises(KeyError, match="already exists"):
            cashflow.add_variable(Variable(name="CASH"))

    def test_add_with_missing_dependency_raises(self, cashflow: Model) -> None:
        with pytest.raises(MissingVariableError, match="Dependency 'TAX' not found for 'NET'"):
            cashflow.add_variable(Variable(name="NET", formula="REVENUE - TAX"))
        assert "NET" not in cashflow

    def test_temporal_self_reference_is_legal(self) -> None:
        model = Model(name="m")
        model.add_variable(Variable(name="X", formula="X[t-1] + 1"))
        assert "X" in model

    def test_temporal_reference_to_missing_variable_raises(self) -> None:
        model = Model(name="m")
        with pytest.raises(MissingVariableError):
            model.add_variable(Variable(name="X", formula="Y[t-1] + 1"))

    def test_update_variable_rederives_dependencies(self, cashflow: Model) -> None:
        updated = cashflow.update_variable("CASH", formula="REVENUE - EXPENSES")
        assert updated.dependencies == ("EXPENSES", "REVENUE")
        assert cashflow.get_variable("CASH") is updated
        assert updated.values == (1000.0,)

    def test_update_variable_checks_dependencies(self, cashflow: Model) -> None:
        with pytest.raises(MissingVariableError):
            cashflow.update_variable("CASH", formula="MISSING * 2")
        assert cashflow.get_variable("CASH").formula == "CASH[t-1] + REVENUE[t] - EXPENSES[t]"

    def test_update_cannot_rename(self, cashflow: Model) -> None:
        with pytest.raises(ValueError, match="renamed"):
            cashflow.update_variable("CASH", name="MONEY")
        assert "MONEY" not in cashflow

    def test_update_accepts_unchanged_name(self, cashflow: Model) -> None:
        updated = cashflow.update_variable("EXPENSES", name="EXPENSES", values=(60, 60, 60))
        assert updated.values == (60.0, 60.0, 60.0)

    def test_remove_referenced_variable_raises(self, cashflow: Model) -> None:
        with pytest.raises(VariableInUseError, match="referenced by: CASH"):
            cashflow.remove_variable("REVENUE")

    def test_remove_unreferenced_variable(self, cashflow: Model) -> None:
        removed = cashflow.remove_variable("CASH")
        assert removed.name == "CASH"
        assert "CASH" not in cashflow

    def test_remove_variable_named_by_edge_raises(self, cashflow: Model) -> None:
        cashflow.remove_variable("CASH")
        cashflow.add_edge(Edge.dependency("REVENUE", "EXPENSES"))
        with pytest.raises(VariableInUseError, match="edge"):
            cashflow.remove_variable("EXPENSES")

    def test_add_edge_with_missing_endpoint_raises(self, cashflow: Model) -> None:
        with pytest.raises(MissingVariableError):
            cashflow.add_edge(Edge.dependency("REVENUE", "NOPE"))

    def test_add_duplicate_edge_raises(self, cashflow: Model) -> None:
        cashflow.add_edge(Edge.dependency("REVENUE", "CASH"))
        with pytest.raises(KeyError):
            cashflow.add_edge(Edge.dependency("REVENUE", "CASH"))

    def test_remove_edge(self, cashflow: Model) -> None:
        edge = Edge.dependency("REVENUE", "CASH")
        cashflow.add_edge(edge)
        assert cashflow.remove_edge(edge.id) == edge
        with pytest.raises(KeyError):
            cashflow.remove_edge(edge.id)

    def test_mutation_updates_timestamps(self) -> None:
        model = Model(name="m")
        assert model.metadata.created is None
        model.add_variable(Variable(name="X"))
        assert model.metadata.created is not None
        assert model.metadata.updated is not None


class TestModelQueries:
    def test_dependents_and_dependencies(self, cashflow: Model) -> None:
        assert [v.name for v in cashflow.dependents_of("REVENUE")] == ["CASH"]
        assert [v.name for v in cashflow.dependencies_of("CASH")] == ["EXPENSES", "REVENUE"]
        assert cashflow.dependents_of("CASH") == []

    def test_all_dependencies_is_transitive_and_excludes_self(self, cashflow: Model) -> None:
        cashflow.add_variable(Variable(name="RUNWAY", formula="CASH / EXPENSES"))
        assert cashflow.all_dependencies("RUNWAY") == {"CASH", "EXPENSES", "REVENUE"}
        assert cashflow.all_dependencies("CASH") == {"EXPENSES", "REVENUE"}

    def test_check_integrity_of_consistent_model(self, cashflow: Model) -> None:
        assert cashflow.check_integrity() == []

    def test_check_integrity_reports_loaded_inconsistencies(self) -> None:
        model = Model(
            name="broken",
            _variables={"X": Variable(name="X", formula="Y + 1")},
            _edges={"e": Edge(id="e", source="X", target="Z")},
        )
        assert model.check_integrity() == [
            "Variable 'X': Dependency 'Y' not found for 'X'",
            "Edge 'e': variable 'Z' not found",
        ]

    def test_formula_edges(self, cashflow: Model) -> None:
        edges = {edge.id: edge for edge in formula_edges(cashflow)}
        assert set(edges) == {"CASH-temporal-CASH", "REVENUE-temporal-CASH", "EXPENSES-temporal-CASH"}
        assert edges["CASH-temporal-CASH"].lag == 1
        assert edges["REVENUE-temporal-CASH"].lag == 0

    def test_sync_formula_edges_adds_missing_only(self, cashflow: Model) -> None:
        assert len(cashflow.sync_formula_edges()) == 3
        assert cashflow.sync_formula_edges() == []
        assert len(cashflow.edges) == 3

    def test_clone_is_independent(self, cashflow: Model) -> None:
        copy = cashflow.clone()
        copy.update_variable("REVENUE", values=(1.0,))
        assert cashflow.get_variable("REVENUE").values == (100.0, 100.0, 100.0)

    def test_subset(self, cashflow: Model) -> None:
        cashflow.sync_formula_edges()
        sub = cashflow.subset(["REVENUE", "CASH"])
        assert sub.name == "cashflow_subset"
        assert list(sub.variables) == ["REVENUE", "CASH"]
        assert set(sub.edges) == {"CASH-temporal-CASH", "REVENUE-temporal-CASH"}

    def test_subset_with_unknown_name_raises(self, cashflow: Model) -> None:
        with pytest.raises(MissingVariableError):
            cashflow.subset(["NOPE"])

    def test_document_roundtrip_preserves_order(self, cashflow: Model) -> None:
        restored = Model.from_document(cashflow.to_document())
        assert list(restored.variables) == ["REVENUE", "EXPENSES", "CASH"]
        assert restored.get_variable("CASH") == cashflow.get_variable("CASH")
