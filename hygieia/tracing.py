"""Tracing — OpenTelemetry tracers, exported through Logfire.

``configure_tracing`` runs once from main.py.  Before that (and in tests)
every span lands on the no-op provider, so modules can create tracers at
import time without caring whether export is set up.
"""

from __future__ import annotations

import logfire
from opentelemetry import trace


def configure_tracing(service_name: str = "hygieia") -> None:
    """Install Logfire as the OTEL provider and instrument pydantic-ai.

    Traces leave the process only when LOGFIRE_TOKEN is set.
    """
    logfire.configure(
        service_name=service_name,
        send_to_logfire="if-token-present",
        console=False,
    )
    logfire.instrument_pydantic_ai()


def get_tracer(name: str) -> trace.Tracer:
    return trace.get_tracer(name)
