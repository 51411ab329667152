"""Shell-specific export formatting."""

BOURNE_SHELLS = ("bash", "sh", "zsh")
C_SHELLS = ("csh", "tcsh")
SUPPORTED_SHELLS = ("fish", *BOURNE_SHELLS, *C_SHELLS)


def escape_value(value: str, shell: str) -> str:
    """Escape a value for use inside double quotes in the given shell.

    Args:
        value: The raw value.
        shell: Target shell name. Unknown shells get bash-style escaping.

    Returns:
        The escaped value.
    """
    if shell == "fish":
        return value.replace("\\", "\\\\").replace("$", "\\$").replace('"', '\\"')
    if shell in C_SHELLS:
        return value.replace("$", "\\$").replace("!", "\\!").replace('"', '\\"')
    return (
        value.replace("\\", "\\\\")
        .replace("$", "\\$")
        .replace("`", "\\`")
        .replace('"', '\\"')
    )


def format_export(key: str, value: str, shell: str) -> str:
    """Format one secret as an environment export statement.

    Examples:
        >>> format_export("FOO", "bar", "fish")
        'set -gx FOO "bar"'
        >>> format_export("FOO", "bar", "bash")
        'export FOO="bar"'
    """
    escaped = escape_value(value, shell)
    if shell == "fish":
        return f'set -gx {key} "{escaped}"'
    if shell in C_SHELLS:
        return f'setenv {key} "{escaped}"'
    return f'export {key}="{escaped}"'
