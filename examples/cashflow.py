"""Cash Flow Example for modelit.

This example builds the model in ``cashflow.toml`` in code and shows:
- Parameters, series and formula variables
- Time-offset references (``CASH[t-1]``) for recursive balances
- Dependency graph analysis
- Scenario simulation with parameter overrides

Run it with:
    uv run python examples/cashflow.py
"""

import modelit as mi

# -----------------------------------------------------------------------------
# Model Setup
# -----------------------------------------------------------------------------

HORIZON = 6

model = mi.Model(name="cashflow", description="Monthly cash position of a small business")

model.add_variable(
    mi.Variable(
        name="REVENUE",
        kind=mi.VariableKind.PARAMETER,
        values=(100, 110, 121, 133.1, 146.41, 161.05),
        metadata=mi.VariableMetadata(units="kUSD"),
    ),
)
model.add_variable(mi.Variable(name="COGS_RATE", kind=mi.VariableKind.PARAMETER, values=(0.3,) * HORIZON))
model.add_variable(mi.Variable(name="COGS", formula="REVENUE * COGS_RATE"))
model.add_variable(mi.Variable(name="OPEX", kind=mi.VariableKind.SERIES, values=(40, 40, 45, 45, 50, 50)))
model.add_variable(mi.Variable(name="EBITDA", formula="REVENUE - COGS - OPEX"))
model.add_variable(mi.Variable(name="CASH", formula="CASH[t-1] + EBITDA[t]", values=(500,)))
model.add_variable(mi.Variable(name="RUNWAY", formula="CASH / max(OPEX, 1)"))

# Mirror the formulas as annotated edges
model.sync_formula_edges()

# -----------------------------------------------------------------------------
# Analysis
# -----------------------------------------------------------------------------

report = mi.validate_model(model)
for warning in report.warnings:
    print(f"warning: {warning}")

analysis = mi.analyze_graph(model)
print(f"Evaluation order: {' -> '.join(analysis.topological_order)}")
print(f"Levels: {analysis.levels}")

# -----------------------------------------------------------------------------
# Evaluation
# -----------------------------------------------------------------------------

result = mi.evaluate_model(model, HORIZON)
for name in ("EBITDA", "CASH", "RUNWAY"):
    print(f"{name:>8}: {[round(v, 2) for v in result.get_value(name)]}")

# -----------------------------------------------------------------------------
# Scenarios
# -----------------------------------------------------------------------------

scenarios = {
    "flat": {"REVENUE": [100] * HORIZON},
    "downturn": {"REVENUE": [100, 80, 70, 60, 60, 60], "COGS_RATE": [0.4] * HORIZON},
}
for scenario, outcome in mi.simulate_scenarios(model, scenarios, HORIZON).items():
    print(f"{scenario:>8}: final cash {outcome.get_value('CASH')[-1]:.2f}")
