"""Utility helpers used across ``rxtunnel`` modules."""

import traceback


def get_short_error_info(e: BaseException) -> str:
    """
    Get a one-line description of an exception.

    Args:
        e (BaseException): The exception to describe.

    Returns:
        str: ``"<ExceptionType>: <message>"``.
    """
    return f"{type(e).__name__}: {str(e)}"


def get_full_error_info(e: BaseException) -> str:
    """
    Get the formatted traceback of an exception.

    Args:
        e (BaseException): The exception to describe.

    Returns:
        str: The full traceback text, as printed by the interpreter.
    """
    return "".join(traceback.format_exception(type(e), e, e.__traceback__))


def describe_target(host: str, port: int) -> str:
    """Format a host/port pair, bracketing IPv6 literals."""
    if ":" in host and not host.startswith("["):
        return f"[{host}]:{port}"
    return f"{host}:{port}"
