"""Health-check declarations and the local-command executor for the Twenty CRM.

`python -m healthchecks.main` probes every declared HTTP target, runs the
configured local commands (such as the Playwright smoke test) and prints one
status line per check.
"""
