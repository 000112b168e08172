"""
Core application engine for routing and running download jobs.

The `JobProcessor` is the entry point used by the CLI: it resolves URLs to
collections when jobs are added and hands jobs to the `CommandExecutor` when
they run. The `Scheduler` drives the processor unattended.
"""
