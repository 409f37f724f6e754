import os
import logging
from azure.monitor.opentelemetry import configure_azure_monitor

# Dedicated logger so telemetry messages stay apart from the pipeline logs
logger = logging.getLogger("echo-mindmap-telemetry")


def setup_telemetry():
    """
    Initializes Azure Monitor OpenTelemetry.

    Once configured it captures every FastAPI request/response plus outbound
    HTTP calls (Gemini uploads, status polls) without per-endpoint code.
    Telemetry is optional: a missing or broken connection string only logs.
    """
    connection_string = os.getenv("APPLICATIONINSIGHTS_CONNECTION_STRING")

    if not connection_string:
        logger.warning("No Instrumentation Key found. Telemetry is DISABLED.")
        return False

    try:
        configure_azure_monitor(
            connection_string=connection_string,
            logger_name="echo-mindmap-tracer",
        )
        logger.info("Azure Monitor Tracking Enabled & Connected!")
        return True

    except Exception as e:
        # Telemetry failure shouldn't crash the app
        logger.error(f"Failed to initialize Azure Monitor: {e}")
        return False
