"""UDP control and telemetry driver for the Khepera III mobile robot."""

__version__ = "1.0.0"
