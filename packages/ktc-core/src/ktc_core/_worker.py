"""Worker that hosts one tool inside an isolated loading context.

Started by ``ktc_core.process`` as a script in an isolated interpreter
(``python -I _worker.py``). The protocol is newline-delimited JSON on the
worker's stdin and stdout. The first line on stdin describes the context:

    stdin  ← {"entry_point": "...", "status_type": "...", "artifacts": [...],
              "host_path": [...], "modules": [...]}
    stdout → {"event": "ready"}
           | {"event": "error", "message": "..."}
    stdin  ← {"args": ["-d", "out", "Main.kt"]}
    stdout → {"event": "output", "text": "..."}    (zero or more)
    stdout → {"event": "result", "code": 0}
           | {"event": "failure", "message": "..."}

The worker searches the artifacts first, then the host's import path.
Modules the worker imported for itself are dropped from ``sys.modules`` when
an artifact provides them, so the tool imports the artifact's copy.

This module uses only the Python standard library and must not import
ktc_core.
"""

import importlib
import io
import json
import os
import sys
import traceback

# Never re-imported, whatever the artifacts contain
_PINNED = frozenset({"sys", "builtins", "__main__"})


class OutputChannel(io.TextIOBase):
    """Text sink that forwards every write to the parent as an output event."""

    def __init__(self, channel):
        self._channel = channel

    def writable(self):
        return True

    def write(self, text):
        if text:
            send(self._channel, {"event": "output", "text": text})
        return len(text)


def load_type(name):
    """Import a type by its fully-qualified dotted name."""
    module_name, _, attr = name.rpartition(".")
    if not module_name:
        raise ImportError(f"{name!r} is not a fully-qualified type name")
    module = importlib.import_module(module_name)
    try:
        return getattr(module, attr)
    except AttributeError:
        raise ImportError(f"{module_name!r} has no type {attr!r}") from None


def bind(entry_point, status_type):
    """Instantiate the tool and resolve its exec and get_code operations."""
    tool_type = load_type(entry_point)
    code_type = load_type(status_type)

    tool = tool_type()
    execute = getattr(tool, "exec", None)
    if not callable(execute):
        raise TypeError(f"{entry_point} has no exec(out, args) method")
    get_code = getattr(code_type, "get_code", None)
    if not callable(get_code):
        raise TypeError(f"{status_type} has no get_code() method")
    return execute, get_code


def evict_shadowed(provided):
    """Drop cached modules that an artifact module (or package) replaces."""
    provided = set(provided)
    for name in list(sys.modules):
        if name in _PINNED:
            continue
        parts = name.split(".")
        if any(".".join(parts[:i]) in provided for i in range(1, len(parts) + 1)):
            del sys.modules[name]
    importlib.invalidate_caches()


def send(channel, message):
    channel.write(json.dumps(message) + "\n")
    channel.flush()


def serve(channel, requests, execute, get_code):
    """Run one tool invocation per request line until stdin closes."""
    out = OutputChannel(channel)
    for line in requests:
        if not line.strip():
            continue
        args = [str(a) for a in json.loads(line)["args"]]
        try:
            status = execute(out, args)
            code = int(get_code(status))
        except Exception:
            send(channel, {"event": "failure", "message": traceback.format_exc()})
        else:
            send(channel, {"event": "result", "code": code})


def main():
    # Keep a private copy of stdout for the protocol and send anything the
    # tool prints straight to stderr.
    channel = io.TextIOWrapper(os.fdopen(os.dup(1), "wb"), encoding="utf-8")
    os.dup2(2, 1)
    sys.stdout = sys.stderr

    requests = io.TextIOWrapper(sys.stdin.buffer, encoding="utf-8")
    spec = json.loads(requests.readline())

    host_path = [p for p in spec.get("host_path", []) if p not in sys.path]
    sys.path[0:0] = [*spec["artifacts"], *host_path]
    evict_shadowed(spec.get("modules", []))

    try:
        execute, get_code = bind(spec["entry_point"], spec["status_type"])
    except Exception as e:
        send(channel, {"event": "error", "message": f"{type(e).__name__}: {e}"})
        return 1

    send(channel, {"event": "ready"})
    serve(channel, requests, execute, get_code)
    return 0


if __name__ == "__main__":
    sys.exit(main())
