"""spanlog: turn span events into correlated log records.

A telemetry pipeline stage that filters spans and span events with boolean
conditions and synthesizes one log record per matching event.
"""

__version__ = "0.1.0"
