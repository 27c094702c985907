"""Release orchestration engine: phase derivation, sequencing, execution, scheduling."""
