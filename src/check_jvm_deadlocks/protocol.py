"""
HotSpot Attach Protocol

This module handles encoding of requests to, and parsing of responses from,
the HotSpot attach listener socket.

Request Format:
- "1" (protocol version), command, arg1, arg2, arg3; each NUL-terminated.
  Missing arguments are sent as empty strings.

Response Format:
- First line: integer completion status (0 = success)
- Remainder: command output (e.g. system properties in java.util.Properties format)
"""

PROTOCOL_VERSION = "1"
ARGUMENT_COUNT = 3

_ESCAPES = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}


def encode_request(command: str, *args: str) -> bytes:
    """
    Encode an attach request.

    Args:
        command: The attach command (e.g. "properties", "load").
        *args: Up to three command arguments.

    Returns:
        bytes: The NUL-separated request.

    Raises:
        ValueError: If more than three arguments are given.
    """
    if len(args) > ARGUMENT_COUNT:
        raise ValueError(f"Attach commands take at most {ARGUMENT_COUNT} arguments, got {len(args)}")

    padded = list(args) + [""] * (ARGUMENT_COUNT - len(args))
    return b"".join(f"{part}\0".encode("utf-8") for part in [PROTOCOL_VERSION, command, *padded])


def parse_response(data: bytes) -> tuple[int, str]:
    """
    Split a raw attach response into completion status and output.

    Args:
        data: Everything read from the socket until EOF.

    Returns:
        tuple[int, str]: The completion status and the remaining output.

    Raises:
        ValueError: If the response is empty or the status is not an integer.
    """
    text = data.decode("utf-8", errors="replace")
    if not text:
        raise ValueError("Target VM did not respond")

    status_line, _, output = text.partition("\n")
    try:
        status = int(status_line.strip())
    except ValueError:
        raise ValueError(f"Cannot read completion status from '{status_line}'")

    return status, output


def parse_agent_load_result(output: str) -> int:
    """
    Extract the agent return code from a "load" command output.

    Newer JVMs answer "return code: <n>", older ones a bare integer and some
    nothing at all when the agent started.

    Raises:
        ValueError: If the output is an error message rather than a return code.
    """
    result = output.strip()
    if not result:
        return 0

    prefix = "return code: "
    if result.startswith(prefix):
        result = result[len(prefix):]
    try:
        return int(result)
    except ValueError:
        raise ValueError(output.strip())


def parse_properties(text: str) -> dict[str, str]:
    """
    Parse java.util.Properties text as written by ``Properties.store``.

    Handles comments, the '=' / ':' / whitespace separators, line continuations
    and backslash escapes including \\uXXXX.

    Args:
        text: The properties text.

    Returns:
        dict[str, str]: Property names mapped to their values.
    """
    properties = {}

    for logical_line in _logical_lines(text):
        key, value = _split_key_value(logical_line)
        properties[_unescape(key)] = _unescape(value)

    return properties


def _logical_lines(text: str):
    """Yield non-comment lines with continuations joined."""
    pending = ""
    for raw in text.splitlines():
        line = raw.lstrip()
        if not pending and (not line or line[0] in "#!"):
            continue

        # An odd number of trailing backslashes continues the line
        trailing = len(line) - len(line.rstrip("\\"))
        if trailing % 2 == 1:
            pending += line[:-1]
            continue

        yield pending + line
        pending = ""

    if pending:
        yield pending


def _split_key_value(line: str) -> tuple[str, str]:
    index = 0
    while index < len(line):
        char = line[index]
        if char == "\\":
            index += 2
            continue
        if char in "=: \t\f":
            break
        index += 1

    key = line[:index]
    rest = line[index:].lstrip(" \t\f")
    if rest[:1] in ("=", ":"):
        rest = rest[1:].lstrip(" \t\f")
    return key, rest


def _unescape(value: str) -> str:
    result = []
    index = 0
    while index < len(value):
        char = value[index]
        if char != "\\" or index + 1 >= len(value):
            result.append(char)
            index += 1
            continue

        escaped = value[index + 1]
        if escaped == "u":
            code = value[index + 2:index + 6]
            try:
                result.append(chr(int(code, 16)))
            except ValueError:
                raise ValueError(f"Malformed \\uxxxx encoding: '\\u{code}'")
            index += 6
        else:
            result.append(_ESCAPES.get(escaped, escaped))
            index += 2

    return "".join(result)
