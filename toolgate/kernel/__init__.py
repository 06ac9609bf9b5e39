"""Kernel: tool route resolution, credentials, validation and invocation."""
