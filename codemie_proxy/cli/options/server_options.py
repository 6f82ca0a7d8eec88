"""Server-related CLI options."""

import typer


def validate_port(
    ctx: typer.Context, param: typer.CallbackParam, value: int | None
) -> int | None:
    """Validate port number; 0 asks the OS for a free port."""
    if value is None:
        return None

    if value < 0 or value > 65535:
        raise typer.BadParameter("Port must be between 0 and 65535")

    return value


def validate_log_level(
    ctx: typer.Context, param: typer.CallbackParam, value: str | None
) -> str | None:
    """Validate log level."""
    if value is None:
        return None

    valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
    if value.upper() not in valid_levels:
        raise typer.BadParameter(
            f"Log level must be one of: {', '.join(sorted(valid_levels))}"
        )

    return value.upper()


def validate_target_url(
    ctx: typer.Context, param: typer.CallbackParam, value: str | None
) -> str | None:
    """Validate the upstream base URL scheme."""
    if value is None:
        return None

    if not value.startswith(("http://", "https://")):
        raise typer.BadParameter("Target URL must start with http:// or https://")

    return value
