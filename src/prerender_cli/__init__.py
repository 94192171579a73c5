"""
CLI (Command Line Interface) for the Prerender Content Gain Audit.

This is a thin wrapper around the core engine. All business logic lives
in the prerender_audit package so queue workers can reuse it.
"""
