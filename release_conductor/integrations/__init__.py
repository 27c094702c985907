"""Interfaces to external collaborators (SCM, CI/CD, test management, ticketing, messaging)."""
