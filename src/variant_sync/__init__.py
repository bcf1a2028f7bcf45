"""Variant analysis run tracking and modeled-API reconciliation engine.

Two halves share one session context:

- ``variant_analysis`` follows a distributed query across thousands of
  repositories: every repository ends in exactly one outcome, skipped ones are
  grouped by reason, and the run moves through an explicit lifecycle.
- ``model_editor`` keeps the modeled-method map consistent while background
  generation tasks (one per package) and direct user edits write to it
  concurrently.

``protocol`` exposes both halves to a presentation surface as a typed,
versioned message stream, and ``storage`` persists saved models.
"""

__version__ = "0.1.0"
