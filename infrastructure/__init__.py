"""
Adapters for everything outside the process: payment provider, alert mail,
event bus and tracing. Domain services get them from ``infrastructure.container``.
"""
