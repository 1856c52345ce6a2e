"""Agent orchestration engine for role-based CLI agents.

Each invocation spawns a fresh agent process (``claude`` by default) with an
isolated context.  Coordination between invocations happens only through the
shared task file and the plain-text markers the agents print:

- the manager role emits ``**INVOKE**`` directives that start sub-agents;
- every role signals completion or iteration exhaustion with fixed markers;
- the planner role writes a replacement task list between begin/end markers.

Structured progress events travel on the agent's stderr as JSON lines.
"""
