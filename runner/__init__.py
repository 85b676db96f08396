"""
Agent runner.

Executor-side half of the relay: runs the agent process and gates its
tool invocations through the relay backend.
"""
