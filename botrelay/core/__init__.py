"""Core relay primitives (adapter events and the shared relay context).

Everything the session, telemetry and admin code needs is handed over through
`RelayContext` so tests can swap in fakes without touching module state.
"""
