"""Command and response types exchanged with the sven daemon.

Each connection carries exactly one command line and one response line of
UTF-8 JSON. Variants are externally tagged: a variant without fields is
encoded as its bare name, any other variant as a single-key object mapping the
name to its payload.

    "ListSecrets"
    {"AddSecret": {"key": "FOO", "value": "bar"}}
    {"Secrets": [["FOO", "bar"]]}
"""

import json
from dataclasses import dataclass, field
from typing import Any

from sven.exceptions import ProtocolError

DEFAULT_SHELL = "bash"


# Commands


@dataclass(frozen=True)
class GetSecrets:
    """Return every cached secret."""

    shell: str = DEFAULT_SHELL


@dataclass(frozen=True)
class AddSecret:
    """Store or overwrite one secret."""

    key: str
    value: str


@dataclass(frozen=True)
class RemoveSecret:
    """Delete one secret."""

    key: str


@dataclass(frozen=True)
class ListSecrets:
    """Return every cached key."""


@dataclass(frozen=True)
class Shutdown:
    """Stop the daemon."""


Command = GetSecrets | AddSecret | RemoveSecret | ListSecrets | Shutdown


# Responses


@dataclass(frozen=True)
class Secrets:
    """Secret pairs in key order."""

    secrets: list[tuple[str, str]] = field(default_factory=list)


@dataclass(frozen=True)
class KeyList:
    """Secret keys in key order."""

    keys: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Success:
    """A completed operation."""

    message: str


@dataclass(frozen=True)
class Error:
    """A failed operation."""

    message: str


Response = Secrets | KeyList | Success | Error


def _dumps(data: Any) -> str:
    # json.dumps escapes control characters, so the result is a single line
    return json.dumps(data, ensure_ascii=False)


def _loads(line: str | bytes) -> Any:
    if isinstance(line, bytes):
        try:
            line = line.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProtocolError(f"Message is not valid UTF-8: {e}") from e
    try:
        return json.loads(line)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"Invalid JSON: {e}") from e


def _split_variant(data: Any) -> tuple[str, Any]:
    """Split an externally tagged value into (tag, payload)."""
    if isinstance(data, str):
        return data, None
    if isinstance(data, dict) and len(data) == 1:
        ((tag, payload),) = data.items()
        return tag, payload
    raise ProtocolError(f"Expected a tagged variant, got {type(data).__name__}")


def _require_str(payload: Any, name: str, tag: str) -> str:
    if not isinstance(payload, dict) or not isinstance(payload.get(name), str):
        raise ProtocolError(f"{tag} requires a string field '{name}'")
    return payload[name]


def _require_no_payload(payload: Any, tag: str) -> None:
    if payload is not None:
        raise ProtocolError(f"{tag} takes no payload")


def encode_command(command: Command) -> str:
    """Serialize a command to a single JSON line (without the newline)."""
    data: Any
    match command:
        case GetSecrets(shell=shell):
            data = {"GetSecrets": {"shell": shell}}
        case AddSecret(key=key, value=value):
            data = {"AddSecret": {"key": key, "value": value}}
        case RemoveSecret(key=key):
            data = {"RemoveSecret": {"key": key}}
        case ListSecrets():
            data = "ListSecrets"
        case Shutdown():
            data = "Shutdown"
        case _:
            raise TypeError(f"Not a command: {command!r}")
    return _dumps(data)


def decode_command(line: str | bytes) -> Command:
    """Parse a command line.

    Raises:
        ProtocolError: If the line is not a well-formed command.
    """
    tag, payload = _split_variant(_loads(line))
    match tag:
        case "GetSecrets":
            return GetSecrets(shell=_require_str(payload, "shell", tag))
        case "AddSecret":
            return AddSecret(
                key=_require_str(payload, "key", tag),
                value=_require_str(payload, "value", tag),
            )
        case "RemoveSecret":
            return RemoveSecret(key=_require_str(payload, "key", tag))
        case "ListSecrets":
            _require_no_payload(payload, tag)
            return ListSecrets()
        case "Shutdown":
            _require_no_payload(payload, tag)
            return Shutdown()
    raise ProtocolError(f"Unknown command: {tag}")


def encode_response(response: Response) -> str:
    """Serialize a response to a single JSON line (without the newline)."""
    data: Any
    match response:
        case Secrets(secrets=secrets):
            data = {"Secrets": [[key, value] for key, value in secrets]}
        case KeyList(keys=keys):
            data = {"KeyList": list(keys)}
        case Success(message=message):
            data = {"Success": message}
        case Error(message=message):
            data = {"Error": message}
        case _:
            raise TypeError(f"Not a response: {response!r}")
    return _dumps(data)


def decode_response(line: str | bytes) -> Response:
    """Parse a response line.

    Raises:
        ProtocolError: If the line is not a well-formed response.
    """
    tag, payload = _split_variant(_loads(line))
    match tag:
        case "Secrets":
            if not isinstance(payload, list) or not all(
                isinstance(pair, list)
                and len(pair) == 2
                and all(isinstance(item, str) for item in pair)
                for pair in payload
            ):
                raise ProtocolError("Secrets requires a list of [key, value] pairs")
            return Secrets([(key, value) for key, value in payload])
        case "KeyList":
            if not isinstance(payload, list) or not all(isinstance(k, str) for k in payload):
                raise ProtocolError("KeyList requires a list of strings")
            return KeyList(list(payload))
        case "Success" | "Error":
            if not isinstance(payload, str):
                raise ProtocolError(f"{tag} requires a string message")
            return Success(payload) if tag == "Success" else Error(payload)
    raise ProtocolError(f"Unknown response: {tag}")
