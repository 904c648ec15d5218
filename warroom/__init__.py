"""
War Room - staged entrepreneurship assessment engine.

A learner runs a simulated startup through six stages. Each answer is
scored against competencies, may trigger a known founder mistake, and
changes the simulated business state; mistakes compound as later stages
are entered.

Packages:
- core: errors, stages, levels, expression evaluator
- state: SimulationState and merge primitives
- questions: question bank, branching, text templates
- scoring: competency scoring and per-type strategies
- mistakes: mistake registry and detection
- consequences: immediate and compounding consequences
- grading: AI grading of free-text answers
- assessment: orchestration and persistence
- cli: typer command line
"""

__version__ = "0.1.0"
